"""Effect channel evaluation: point interpolation, operators and ordering."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from valuator.core.data_helpers import to_epoch_day

from .enums import EffectOperator, EffectStage


@dataclass(frozen=True)
class EffectPoint:
    """One dated value in a channel's time series."""

    date: str  # YYYY-MM-DD
    value: float


@dataclass(frozen=True)
class ChannelCandidate:
    """An effect channel eligible to act on a symbol at a date."""

    channel_id: str
    insight_id: str
    insight_title: str
    metric_key: str
    stage: EffectStage
    operator: EffectOperator
    priority: int
    created_at: datetime
    points: tuple[EffectPoint, ...] = ()

    def sort_key(self) -> tuple[int, int, datetime, str, str]:
        # Channel id only separates two channels created at the same instant.
        return (self.stage.order, self.priority, self.created_at, self.insight_id, self.channel_id)


@dataclass
class AppliedEffect:
    """Audit entry for one channel applied during a preview."""

    insight_id: str
    insight_title: str
    channel_id: str
    metric_key: str
    stage: EffectStage
    operator: EffectOperator
    priority: int
    value: float
    before_value: float | None
    after_value: float | None
    scopes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "insight_id": self.insight_id,
            "insight_title": self.insight_title,
            "channel_id": self.channel_id,
            "metric_key": self.metric_key,
            "stage": self.stage.value,
            "operator": self.operator.value,
            "priority": self.priority,
            "value": self.value,
            "before_value": self.before_value,
            "after_value": self.after_value,
            "scopes": list(self.scopes),
        }


def interpolate_effect(points: Sequence[EffectPoint], as_of_date: str) -> float | None:
    """Value of a sparse series at ``as_of_date``.

    Exact dates return their point value, dates strictly between two points
    are linearly interpolated by calendar day, and dates outside the
    [first, last] range return None (the channel contributes nothing).
    """
    if not points:
        return None
    ordered = sorted(points, key=lambda p: p.date)
    if as_of_date < ordered[0].date or as_of_date > ordered[-1].date:
        return None

    for left, right in zip(ordered, ordered[1:]):
        if as_of_date == left.date:
            return left.value
        if left.date < as_of_date < right.date:
            left_day = to_epoch_day(left.date)
            right_day = to_epoch_day(right.date)
            ratio = (to_epoch_day(as_of_date) - left_day) / (right_day - left_day)
            return left.value + (right.value - left.value) * ratio

    # Only the last point (or a single-point series) remains
    last = ordered[-1]
    return last.value if as_of_date == last.date else None


def apply_effect_operator(
    current: float | None, operator: EffectOperator, value: float
) -> float:
    """Combine the current metric value with a channel value."""
    if operator is EffectOperator.SET:
        return value
    if operator is EffectOperator.ADD:
        return (0.0 if current is None else current) + value
    if operator is EffectOperator.MUL:
        return (1.0 if current is None else current) * value
    if operator is EffectOperator.MIN:
        return value if current is None else min(current, value)
    if operator is EffectOperator.MAX:
        return value if current is None else max(current, value)
    raise ValueError(f"Unsupported operator: {operator}")
