"""Utility functions for ids, timestamps, I/O and logging."""

import uuid
from datetime import datetime, timezone
from pathlib import Path
from loguru import logger
from .config import get_model_pricing


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, create if needed."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def generate_id(prefix: str = "") -> str:
    """Generate an opaque unique identifier, optionally prefixed."""
    token = uuid.uuid4().hex
    return f"{prefix}-{token[:12]}" if prefix else token


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    model: str
) -> float:
    """
    Calculate cost in USD for API call.

    Args:
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens
        model: Model name

    Returns:
        Cost in USD
    """
    pricing = get_model_pricing(model)
    input_cost = (input_tokens / 1000) * pricing["input"]
    output_cost = (output_tokens / 1000) * pricing["output"]
    return input_cost + output_cost


def truncate_message(message: str, max_chars: int = 2000) -> str:
    """Truncate a status message so it stays displayable."""
    if len(message) <= max_chars:
        return message
    return message[:max_chars - 3] + "..."


def setup_logger(log_file: Path = None) -> None:
    """Configure loguru logger."""
    logger.remove()  # Remove default handler
    logger.add(
        lambda msg: print(msg, end=""),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )

    if log_file:
        ensure_dir(log_file.parent)
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
            rotation="10 MB"
        )
