"""
Centralized Data Conversion Helpers.

Safe type conversion utilities shared by the metric calculator, the effect
composer and the repositories.

Usage:
    from valuator.core.data_helpers import safe_float, clamp, to_epoch_day
"""

from __future__ import annotations

import math
from datetime import UTC, date, datetime
from typing import Any


def safe_float(value: Any, default: float | None = None) -> float | None:
    """
    Safely convert value to float.

    Handles None, NaN, Inf, pandas NA and conversion errors gracefully.

    Args:
        value: Any value to convert
        default: Default to return if conversion fails

    Returns:
        Float value or default if conversion fails
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        f = float(value)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(f):
        return default
    return f


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return min(high, max(low, value))


def to_epoch_day(value: str | date) -> int:
    """Days since 1970-01-01 for an ISO date string or a date."""
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return value.toordinal() - date(1970, 1, 1).toordinal()


def today_iso() -> str:
    """Current UTC date as YYYY-MM-DD."""
    return datetime.now(UTC).date().isoformat()


def utc_now() -> datetime:
    """Timezone-aware current timestamp."""
    return datetime.now(UTC)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally (use with escape='\\\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
