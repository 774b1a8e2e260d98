"""Tests for the effect composer and snapshot store."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest
import pytest_asyncio

from valuator.core.config import settings
from valuator.core.exceptions import NotFoundError
from valuator.services import insight_service, target_materializer
from valuator.services.valuation_preview import (
    get_valuation_snapshot,
    list_valuation_snapshots,
    preview_valuation,
)


D0 = date(2026, 1, 15)
AS_OF = D0.isoformat()
MOMENTUM = "factor.momentum.20d"
GENERIC = "builtin.generic.factor"


@pytest_asyncio.fixture
async def priced(market, flat_closes):
    """Symbol X with 30 daily closes ending at D0 (momentum 0.10), no profile."""
    await market.add_closes("X", flat_closes, D0)
    return market


async def _insight_on(symbol: str, status: str = "active", **window) -> str:
    detail = await insight_service.create_insight(title=f"View on {symbol}", status=status, **window)
    await insight_service.upsert_scope_rule(detail["id"], "symbol", symbol)
    await target_materializer.materialize(detail["id"])
    return detail["id"]


async def _channel(
    insight_id: str,
    operator: str,
    points: dict[str, float],
    stage: str = "first_order",
    metric_key: str = MOMENTUM,
    method_key: str = GENERIC,
    priority: float | None = None,
    enabled: bool = True,
) -> str:
    channel = await insight_service.upsert_effect_channel(
        insight_id,
        method_key,
        metric_key,
        stage,
        operator,
        priority=priority,
        enabled=enabled,
    )
    for effect_date, value in points.items():
        await insight_service.upsert_effect_point(channel["id"], effect_date, value)
    return channel["id"]


def _generic_fair_value(price: float, momentum: float, volatility: float) -> float:
    return price * (1 + momentum * 0.5) * (1 - volatility * 0.15)


@pytest.mark.asyncio
class TestPreviewBasics:
    async def test_add_channel_on_momentum(self, priced):
        insight_id = await _insight_on("X")
        channel_id = await _channel(insight_id, "add", {AS_OF: 0.05})

        preview = await preview_valuation("X", AS_OF)

        assert preview.not_applicable is False
        assert preview.method_key == GENERIC
        assert preview.method_version_id == "builtin.generic.factor.v1"
        assert preview.base_metrics[MOMENTUM] == pytest.approx(0.10)
        assert preview.adjusted_metrics[MOMENTUM] == pytest.approx(0.15)

        vol = preview.base_metrics["risk.volatility.20d"]
        assert preview.base_value == pytest.approx(_generic_fair_value(110.0, 0.10, vol))
        assert preview.adjusted_value == pytest.approx(_generic_fair_value(110.0, 0.15, vol))
        assert preview.adjusted_metrics["output.return_gap"] == pytest.approx(
            preview.adjusted_value / 110.0 - 1
        )

        [effect] = preview.applied_effects
        assert effect.channel_id == channel_id
        assert effect.insight_id == insight_id
        assert effect.before_value == pytest.approx(0.10)
        assert effect.after_value == pytest.approx(0.15)
        assert effect.scopes == ["symbol:X"]

    async def test_channel_without_point_in_range_contributes_nothing(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "set", {"2026-02-01": 0.5, "2026-02-10": 0.6})

        preview = await preview_valuation("X", AS_OF)

        assert preview.applied_effects == []
        assert preview.adjusted_metrics == preview.base_metrics

    async def test_missing_prices(self, market):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})

        preview = await preview_valuation("X", AS_OF)

        assert preview.not_applicable is True
        assert preview.reason == "missing price data"
        assert preview.applied_effects == []
        with pytest.raises(NotFoundError):
            await get_valuation_snapshot("X", AS_OF, GENERIC)

    async def test_unknown_method(self, priced):
        preview = await preview_valuation("X", AS_OF, method_key="x")
        assert preview.not_applicable is True
        assert preview.reason == "valuation method unavailable: x"
        assert preview.method_version_id is None

    async def test_routes_from_profile(self, market, flat_closes):
        await market.add_profile("S", kind="stock", market="US")
        await market.add_closes("S", flat_closes, D0)

        preview = await preview_valuation("S", AS_OF)

        assert preview.method_key == "builtin.equity.factor"
        vol = preview.base_metrics["risk.volatility.20d"]
        expected = 110.0 * 1.10 * (1 - vol * 0.2)
        assert preview.base_value == pytest.approx(expected)

    async def test_short_history_leaves_momentum_empty(self, market):
        await market.add_closes("X", [101.0, 100.0, 99.0], D0)
        preview = await preview_valuation("X", AS_OF)
        assert preview.base_metrics[MOMENTUM] is None
        assert preview.base_metrics["market.price"] == 101.0

    async def test_repeated_previews_match(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})
        await _channel(insight_id, "mul", {AS_OF: 1.1}, stage="output", metric_key="output.fair_value")

        first = await preview_valuation("X", AS_OF)
        second = await preview_valuation("X", AS_OF)

        assert first.base_metrics == second.base_metrics
        assert first.base_value == second.base_value
        assert first.adjusted_value == second.adjusted_value
        assert first.adjusted_metrics == second.adjusted_metrics
        assert [e.to_dict() for e in first.applied_effects] == [
            e.to_dict() for e in second.applied_effects
        ]


@pytest.mark.asyncio
class TestEligibility:
    """Which channels reach a symbol."""

    async def test_excluded_symbol_ignores_channels(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})
        included = await preview_valuation("X", AS_OF)

        await target_materializer.exclude_target(insight_id, "X", reason="not relevant")
        excluded = await preview_valuation("X", AS_OF)
        assert excluded.applied_effects == []
        assert excluded.adjusted_metrics == excluded.base_metrics

        await target_materializer.unexclude_target(insight_id, "X")
        restored = await preview_valuation("X", AS_OF)
        assert restored.adjusted_metrics == included.adjusted_metrics
        assert restored.adjusted_value == included.adjusted_value
        assert [e.to_dict() for e in restored.applied_effects] == [
            e.to_dict() for e in included.applied_effects
        ]

    async def test_draft_insight_is_ignored(self, priced):
        insight_id = await _insight_on("X", status="draft")
        await _channel(insight_id, "add", {AS_OF: 0.05})

        preview = await preview_valuation("X", AS_OF)
        assert preview.applied_effects == []

    async def test_insight_outside_validity_window_is_ignored(self, priced):
        insight_id = await _insight_on("X", valid_from="2026-02-01", valid_to="2026-03-01")
        await _channel(insight_id, "add", {AS_OF: 0.05})

        preview = await preview_valuation("X", AS_OF)
        assert preview.applied_effects == []

    async def test_soft_deleted_insight_is_ignored(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})
        await insight_service.remove_insight(insight_id)

        preview = await preview_valuation("X", AS_OF)
        assert preview.applied_effects == []

    async def test_disabled_and_foreign_method_channels_are_ignored(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05}, enabled=False)
        await _channel(insight_id, "add", {AS_OF: 0.05}, method_key="builtin.equity.factor")

        preview = await preview_valuation("X", AS_OF)
        assert preview.applied_effects == []

    async def test_wildcard_method_applies(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05}, method_key="*")

        preview = await preview_valuation("X", AS_OF)
        assert len(preview.applied_effects) == 1

    async def test_unmaterialized_insight_is_ignored(self, priced):
        detail = await insight_service.create_insight(title="No targets yet", status="active")
        await insight_service.upsert_scope_rule(detail["id"], "symbol", "X")
        await _channel(detail["id"], "add", {AS_OF: 0.05})

        preview = await preview_valuation("X", AS_OF)
        assert preview.applied_effects == []


@pytest.mark.asyncio
class TestComposition:
    async def test_value_is_interpolated_between_points(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {"2026-01-05": 0.0, "2026-01-25": 0.10})

        preview = await preview_valuation("X", AS_OF)

        [effect] = preview.applied_effects
        assert effect.value == pytest.approx(0.05)
        assert preview.adjusted_metrics[MOMENTUM] == pytest.approx(0.15)

    async def test_last_point_date_still_applies(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {"2026-01-01": 0.02, AS_OF: 0.04})

        preview = await preview_valuation("X", AS_OF)
        assert preview.applied_effects[0].value == pytest.approx(0.04)

    async def test_stage_order_beats_priority(self, priced):
        insight_id = await _insight_on("X")
        second = await _channel(insight_id, "mul", {AS_OF: 2.0}, stage="second_order", priority=5)
        first = await _channel(insight_id, "set", {AS_OF: 0.2}, stage="first_order", priority=10)

        preview = await preview_valuation("X", AS_OF)

        assert [e.channel_id for e in preview.applied_effects] == [first, second]
        assert preview.adjusted_metrics[MOMENTUM] == pytest.approx(0.4)

    async def test_lower_priority_applies_first_within_a_stage(self, priced):
        insight_id = await _insight_on("X")
        late = await _channel(insight_id, "add", {AS_OF: 0.1}, priority=50)
        early = await _channel(insight_id, "set", {AS_OF: 0.3}, priority=10)

        preview = await preview_valuation("X", AS_OF)

        assert [e.channel_id for e in preview.applied_effects] == [early, late]
        assert preview.adjusted_metrics[MOMENTUM] == pytest.approx(0.4)

    async def test_output_stage_acts_after_recompute(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})
        await _channel(insight_id, "max", {AS_OF: 500.0}, stage="output", metric_key="output.fair_value")

        preview = await preview_valuation("X", AS_OF)

        fair_value_effect = preview.applied_effects[1]
        vol = preview.base_metrics["risk.volatility.20d"]
        assert fair_value_effect.before_value == pytest.approx(_generic_fair_value(110.0, 0.15, vol))
        assert preview.adjusted_value == 500.0

    async def test_channel_on_empty_metric_slot(self, priced):
        insight_id = await _insight_on("X")
        await _channel(
            insight_id,
            "add",
            {AS_OF: 2.5},
            metric_key="factor.basis",
            method_key="builtin.futures.basis",
        )

        preview = await preview_valuation("X", AS_OF, method_key="builtin.futures.basis")

        assert preview.base_metrics["factor.basis"] is None
        assert preview.adjusted_metrics["factor.basis"] == 2.5
        assert preview.adjusted_value == pytest.approx(112.5)


@pytest.mark.asyncio
class TestSnapshots:
    async def test_preview_persists_snapshot(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})

        preview = await preview_valuation("X", AS_OF)
        snapshot = await get_valuation_snapshot("X", AS_OF, GENERIC)

        assert snapshot["method_version_id"] == preview.method_version_id
        assert snapshot["adjusted_metrics"][MOMENTUM] == pytest.approx(0.15)
        assert snapshot["applied_effects"][0]["operator"] == "add"

    async def test_second_preview_overwrites(self, priced):
        await preview_valuation("X", AS_OF)
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})
        await preview_valuation("X", AS_OF)

        snapshots = await list_valuation_snapshots("X")
        assert len(snapshots) == 1
        assert len(snapshots[0]["applied_effects"]) == 1

    async def test_concurrent_previews_of_one_key_keep_one_snapshot(self, priced):
        insight_id = await _insight_on("X")
        await _channel(insight_id, "add", {AS_OF: 0.05})

        previews = await asyncio.gather(*(preview_valuation("X", AS_OF) for _ in range(8)))

        assert {p.adjusted_value for p in previews} == {previews[0].adjusted_value}
        snapshots = await list_valuation_snapshots("X")
        assert len(snapshots) == 1
        assert snapshots[0]["adjusted_metrics"][MOMENTUM] == pytest.approx(0.15)

    async def test_one_snapshot_per_method(self, priced):
        await preview_valuation("X", AS_OF)
        await preview_valuation("X", AS_OF, method_key="builtin.spot.carry")

        snapshots = await list_valuation_snapshots("X")
        assert sorted(s["method_key"] for s in snapshots) == [GENERIC, "builtin.spot.carry"]

    async def test_listing_is_capped_by_list_limit_max(self, priced, monkeypatch):
        for method_key in (GENERIC, "builtin.spot.carry", "builtin.equity.factor"):
            await preview_valuation("X", AS_OF, method_key=method_key)
        monkeypatch.setattr(settings, "list_limit_max", 2)

        assert len(await list_valuation_snapshots("X", limit=500)) == 2

    async def test_missing_snapshot(self, stores):
        with pytest.raises(NotFoundError):
            await get_valuation_snapshot("X", AS_OF, GENERIC)
