"""Input normalization for mutating operations.

Every write path runs its arguments through these helpers before touching
the database, so a rejected call never leaves partial state behind. Each
helper raises ``ValidationError`` with the offending field name.
"""

from __future__ import annotations

import math
import re
from datetime import date
from enum import Enum
from typing import Any, TypeVar

from .exceptions import ValidationError


DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
METHOD_KEY_RE = re.compile(r"^[A-Za-z0-9._-]+$")

DEFAULT_PRIORITY = 100
PRIORITY_MIN = -1_000_000
PRIORITY_MAX = 1_000_000

E = TypeVar("E", bound=Enum)


def normalize_required_string(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.", details={"field": field})
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} must not be empty.", details={"field": field})
    return trimmed


def normalize_optional_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_required_date(value: Any, field: str) -> str:
    """Validate a ``YYYY-MM-DD`` calendar date and return it as a string."""
    if isinstance(value, date):
        return value.isoformat()
    text = normalize_required_string(value, field)
    if not DATE_RE.match(text):
        raise ValidationError(f"{field} must be YYYY-MM-DD.", details={"field": field})
    try:
        date.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f"{field} is not a valid calendar date.", details={"field": field}
        ) from None
    return text


def normalize_optional_date(value: Any, field: str) -> str | None:
    if isinstance(value, date):
        return value.isoformat()
    if normalize_optional_string(value) is None:
        return None
    return normalize_required_date(value, field)


def normalize_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """Coerce a raw value into a member of ``enum_cls``."""
    if isinstance(value, enum_cls):
        return value
    text = normalize_required_string(value if value is None else str(value), field)
    try:
        return enum_cls(text)
    except ValueError:
        allowed = "/".join(member.value for member in enum_cls)
        raise ValidationError(
            f"{field} must be one of {allowed}.", details={"field": field, "value": text}
        ) from None


def normalize_priority(value: Any) -> int:
    """Priority defaults to 100 and is floored to an integer."""
    if value is None:
        return DEFAULT_PRIORITY
    if isinstance(value, bool):
        raise ValidationError("priority must be a finite number.", details={"field": "priority"})
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "priority must be a finite number.", details={"field": "priority"}
        ) from None
    if not math.isfinite(num):
        raise ValidationError("priority must be a finite number.", details={"field": "priority"})
    priority = math.floor(num)
    if priority < PRIORITY_MIN or priority > PRIORITY_MAX:
        raise ValidationError(
            f"priority must be between {PRIORITY_MIN} and {PRIORITY_MAX}.",
            details={"field": "priority", "value": priority},
        )
    return priority


def normalize_method_key(value: Any, field: str) -> str:
    key = normalize_required_string(value, field)
    if not METHOD_KEY_RE.match(key):
        raise ValidationError(
            f"{field} may only contain letters, digits, '.', '_' and '-'.",
            details={"field": field, "value": key},
        )
    return key


def normalize_string_array(value: Any) -> list[str]:
    """Trimmed, de-duplicated strings in first-seen order; non-lists become []."""
    if not isinstance(value, (list, tuple)):
        return []
    out: list[str] = []
    for item in value:
        normalized = normalize_optional_string(item)
        if normalized and normalized not in out:
            out.append(normalized)
    return out


def normalize_record(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return dict(value)


def normalize_finite_number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a finite number.", details={"field": field})
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field} must be a finite number.", details={"field": field}
        ) from None
    if not math.isfinite(num):
        raise ValidationError(f"{field} must be a finite number.", details={"field": field})
    return num


def clamp_limit(value: Any, default: int, maximum: int) -> int:
    """Floor a page size into [1, maximum]."""
    if value is None:
        return default
    try:
        return max(1, min(maximum, int(math.floor(float(value)))))
    except (TypeError, ValueError, OverflowError):
        return default


def clamp_offset(value: Any) -> int:
    if value is None:
        return 0
    try:
        return max(0, int(math.floor(float(value))))
    except (TypeError, ValueError, OverflowError):
        return 0
