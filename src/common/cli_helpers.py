"""Common CLI helper utilities."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime, timezone


def setup_logging(level: str = "INFO") -> None:
    """Configure standard logging format for CLI tools."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def parse_date(value: str, field_name: str = "date") -> date:
    """Parse a date string for argparse arguments.

    Args:
        value: Date string in YYYY-MM-DD format.
        field_name: Name of the field for error messages.

    Returns:
        Parsed date object.

    Raises:
        argparse.ArgumentTypeError: If the value is not a valid date.
    """
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{field_name} must be YYYY-MM-DD") from exc


def date_to_datetime(d: date) -> datetime:
    """Midnight UTC at the start of the given date."""
    return datetime.combine(d, datetime.min.time(), tzinfo=timezone.utc)
