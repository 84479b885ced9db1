"""Utility functions for domain models."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get the current UTC datetime with timezone awareness."""
    return datetime.now(UTC)


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return min(1.0, max(0.0, value))
