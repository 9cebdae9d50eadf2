"""Tests for utility helpers and configuration."""

from loguru import logger

from beetlebase.config import Config, get_model_pricing
from beetlebase.utils import calculate_cost, generate_id, setup_logger, truncate_message, utcnow


def test_generate_id():
    """Test plain and prefixed ids."""
    assert len(generate_id()) == 32
    assert generate_id("job-i").startswith("job-i-")
    assert generate_id() != generate_id()


def test_utcnow_is_aware():
    assert utcnow().tzinfo is not None


def test_truncate_message():
    assert truncate_message("short") == "short"
    assert truncate_message("x" * 10, max_chars=8) == "xxxxx..."


def test_calculate_cost_falls_back_to_default_pricing():
    """Test cost calculation for known and unknown models."""
    assert get_model_pricing("unknown-model") == get_model_pricing("gpt-4o-mini")
    assert calculate_cost(1000, 1000, "gpt-4o-mini") == 0.00015 + 0.0006


def test_config_from_environment(monkeypatch):
    """Test that BB_* variables override defaults."""
    monkeypatch.setenv("BB_IMPORT_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("BB_EXPORT_DIR", "/tmp/bb-exports")

    config = Config()

    assert config.bb_import_delay_seconds == 0.5
    assert str(config.export_dir) == "/tmp/bb-exports"
    assert config.bb_import_success_rate == 0.7


def test_setup_logger_writes_file(tmp_path):
    """Test that the file sink receives log lines."""
    log_file = tmp_path / "logs" / "beetlebase.log"

    setup_logger(log_file)
    logger.info("job-i1 succeeded")
    logger.remove()

    assert "job-i1 succeeded" in log_file.read_text()
