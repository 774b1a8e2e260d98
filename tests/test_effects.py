"""Tests for effect interpolation, operators and channel ordering."""

from __future__ import annotations

from datetime import datetime

import pytest

from valuator.domain.effects import (
    AppliedEffect,
    ChannelCandidate,
    EffectPoint,
    apply_effect_operator,
    interpolate_effect,
)
from valuator.domain.enums import EffectOperator, EffectStage


POINTS = (
    EffectPoint(date="2026-01-01", value=0.0),
    EffectPoint(date="2026-01-11", value=1.0),
)


class TestInterpolateEffect:
    """Tests for interpolate_effect."""

    def test_exact_first_point(self):
        assert interpolate_effect(POINTS, "2026-01-01") == 0.0

    def test_exact_last_point(self):
        assert interpolate_effect(POINTS, "2026-01-11") == 1.0

    def test_midpoint_is_linear_by_calendar_day(self):
        assert interpolate_effect(POINTS, "2026-01-06") == pytest.approx(0.5)

    def test_before_first_point_is_none(self):
        assert interpolate_effect(POINTS, "2025-12-31") is None

    def test_after_last_point_is_none(self):
        assert interpolate_effect(POINTS, "2026-01-12") is None

    def test_single_point_only_matches_its_date(self):
        single = (EffectPoint(date="2026-03-01", value=2.5),)
        assert interpolate_effect(single, "2026-03-01") == 2.5
        assert interpolate_effect(single, "2026-03-02") is None

    def test_empty_series_is_none(self):
        assert interpolate_effect((), "2026-01-01") is None

    def test_unsorted_points_are_ordered_first(self):
        reversed_points = tuple(reversed(POINTS))
        assert interpolate_effect(reversed_points, "2026-01-06") == pytest.approx(0.5)

    def test_interpolation_across_month_boundary(self):
        points = (
            EffectPoint(date="2026-01-31", value=10.0),
            EffectPoint(date="2026-02-02", value=20.0),
        )
        assert interpolate_effect(points, "2026-02-01") == pytest.approx(15.0)


class TestApplyEffectOperator:
    """Tests for apply_effect_operator."""

    def test_set_replaces(self):
        assert apply_effect_operator(5.0, EffectOperator.SET, 2.0) == 2.0

    def test_add_on_value(self):
        assert apply_effect_operator(5.0, EffectOperator.ADD, 2.0) == 7.0

    def test_add_on_missing_starts_from_zero(self):
        assert apply_effect_operator(None, EffectOperator.ADD, 2.0) == 2.0

    def test_mul_on_value(self):
        assert apply_effect_operator(5.0, EffectOperator.MUL, 2.0) == 10.0

    def test_mul_on_missing_starts_from_one(self):
        assert apply_effect_operator(None, EffectOperator.MUL, 3.0) == 3.0

    def test_min_and_max(self):
        assert apply_effect_operator(5.0, EffectOperator.MIN, 2.0) == 2.0
        assert apply_effect_operator(5.0, EffectOperator.MAX, 2.0) == 5.0

    def test_min_max_on_missing_take_value(self):
        assert apply_effect_operator(None, EffectOperator.MIN, 4.0) == 4.0
        assert apply_effect_operator(None, EffectOperator.MAX, 4.0) == 4.0


def _candidate(channel_id: str, stage: EffectStage, priority: int, minute: int, insight_id: str = "i-1"):
    return ChannelCandidate(
        channel_id=channel_id,
        insight_id=insight_id,
        insight_title="t",
        metric_key="factor.momentum.20d",
        stage=stage,
        operator=EffectOperator.ADD,
        priority=priority,
        created_at=datetime(2026, 1, 1, 0, minute),
    )


class TestChannelOrdering:
    """Tests for ChannelCandidate.sort_key."""

    def test_stage_beats_priority(self):
        late_stage = _candidate("a", EffectStage.OUTPUT, priority=-50, minute=0)
        early_stage = _candidate("b", EffectStage.BASE, priority=500, minute=0)
        ordered = sorted([late_stage, early_stage], key=ChannelCandidate.sort_key)
        assert [c.channel_id for c in ordered] == ["b", "a"]

    def test_priority_then_creation_time(self):
        c1 = _candidate("c1", EffectStage.FIRST_ORDER, priority=100, minute=5)
        c2 = _candidate("c2", EffectStage.FIRST_ORDER, priority=100, minute=1)
        c3 = _candidate("c3", EffectStage.FIRST_ORDER, priority=10, minute=9)
        ordered = sorted([c1, c2, c3], key=ChannelCandidate.sort_key)
        assert [c.channel_id for c in ordered] == ["c3", "c2", "c1"]

    def test_insight_id_breaks_full_ties(self):
        a = _candidate("x", EffectStage.RISK, priority=1, minute=0, insight_id="b-insight")
        b = _candidate("y", EffectStage.RISK, priority=1, minute=0, insight_id="a-insight")
        ordered = sorted([a, b], key=ChannelCandidate.sort_key)
        assert [c.insight_id for c in ordered] == ["a-insight", "b-insight"]


class TestAppliedEffect:
    def test_to_dict_uses_enum_values(self):
        effect = AppliedEffect(
            insight_id="i",
            insight_title="Rates",
            channel_id="c",
            metric_key="output.fair_value",
            stage=EffectStage.OUTPUT,
            operator=EffectOperator.MUL,
            priority=100,
            value=1.1,
            before_value=10.0,
            after_value=11.0,
            scopes=["tag:bank"],
        )
        data = effect.to_dict()
        assert data["stage"] == "output"
        assert data["operator"] == "mul"
        assert data["scopes"] == ["tag:bank"]
