"""Centralized configuration management using environment variables."""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file from project root
load_dotenv()


class Config(BaseSettings):
    """Configuration settings for beetlebase."""

    # OpenAI API (optional: reports degrade to an "unavailable" message)
    openai_api_key: Optional[str] = None

    # Text generation
    bb_llm_model: str = "gpt-4o-mini"
    bb_report_max_tokens: int = 1200
    bb_suggest_max_tokens: int = 200

    # Job simulation latency (seconds)
    bb_import_delay_seconds: float = 2.0
    bb_export_pickup_delay_seconds: float = 1.0
    bb_export_delay_seconds: float = 3.0

    # Probability that a simulated import (no CSV payload) succeeds
    bb_import_success_rate: float = 0.7

    # CSV upload ceiling
    bb_csv_max_bytes: int = 10 * 1024 * 1024

    # Export artifacts
    bb_export_dir: str = "data/exports"
    bb_download_base_url: str = "/downloads"

    # Public profile links (QR labels)
    bb_public_base_url: str = "https://beetlebase.app"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def export_dir(self) -> Path:
        return Path(self.bb_export_dir)


def get_config() -> Config:
    """Get configuration instance with validation."""
    try:
        return Config()
    except Exception as e:
        if "bb_" in str(e).lower():
            raise ValueError(
                f"Invalid beetlebase configuration: {e}. "
                "Check the BB_* variables in your environment or .env file."
            ) from e
        raise


# Pricing constants (USD per 1K tokens)
PRICING = {
    "gpt-4o-mini": {
        "input": 0.00015,
        "output": 0.0006
    },
    "gpt-4o": {
        "input": 0.0025,
        "output": 0.01
    },
    "gpt-3.5-turbo": {
        "input": 0.0005,
        "output": 0.0015
    }
}


def get_model_pricing(model: str) -> dict:
    """Get pricing for a model, with fallback to gpt-4o-mini."""
    return PRICING.get(model, PRICING["gpt-4o-mini"])
