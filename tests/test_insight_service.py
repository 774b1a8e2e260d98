"""Tests for insight authoring: validation, CRUD, search, rules, channels, points."""

from __future__ import annotations

import asyncio

import pytest

from valuator.core.exceptions import ConflictError, NotFoundError, ValidationError
from valuator.services import insight_service


@pytest.mark.asyncio
class TestCreateInsight:
    async def test_defaults(self, stores):
        detail = await insight_service.create_insight(title="  Rates peak  ", tags=["macro", "macro", " "])

        assert detail["title"] == "Rates peak"
        assert detail["status"] == "draft"
        assert detail["thesis"] == ""
        assert detail["tags"] == ["macro"]
        assert detail["scope_rules"] == []
        assert detail["effect_channels"] == []
        assert detail["deleted_at"] is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"title": "   "},
            {"title": None},
            {"title": "ok", "status": "paused"},
            {"title": "ok", "valid_from": "2026-13-01"},
            {"title": "ok", "valid_from": "15/01/2026"},
            {"title": "ok", "valid_from": "2026-02-01", "valid_to": "2026-01-01"},
        ],
    )
    async def test_rejects_invalid_input(self, stores, kwargs):
        with pytest.raises(ValidationError):
            await insight_service.create_insight(**kwargs)

        page = await insight_service.list_insights()
        assert page["total"] == 0


@pytest.mark.asyncio
class TestUpdateAndDelete:
    async def test_partial_update(self, stores):
        created = await insight_service.create_insight(title="Copper squeeze", thesis="Low stocks")

        updated = await insight_service.update_insight(created["id"], status="active", valid_to="2026-06-30")

        assert updated["status"] == "active"
        assert updated["valid_to"] == "2026-06-30"
        assert updated["thesis"] == "Low stocks"

    async def test_update_checks_window_against_stored_values(self, stores):
        created = await insight_service.create_insight(title="T", valid_to="2026-01-31")
        with pytest.raises(ValidationError):
            await insight_service.update_insight(created["id"], valid_from="2026-02-01")

    async def test_update_missing(self, stores):
        with pytest.raises(NotFoundError):
            await insight_service.update_insight("missing", title="x")

    async def test_soft_delete(self, stores):
        created = await insight_service.create_insight(title="Gone soon")
        await insight_service.remove_insight(created["id"])

        detail = await insight_service.get_insight_detail(created["id"])
        assert detail["status"] == "deleted"
        assert detail["deleted_at"] is not None

        live = await insight_service.list_insights()
        deleted = await insight_service.list_insights(status="deleted")
        assert live["total"] == 0
        assert [i["id"] for i in deleted["items"]] == [created["id"]]

    async def test_restore_clears_deleted_at(self, stores):
        created = await insight_service.create_insight(title="Back again")
        await insight_service.remove_insight(created["id"])
        restored = await insight_service.update_insight(created["id"], status="draft")
        assert restored["deleted_at"] is None

    async def test_remove_missing(self, stores):
        with pytest.raises(NotFoundError):
            await insight_service.remove_insight("missing")

    async def test_list_filters_by_status_and_query(self, stores):
        await insight_service.create_insight(title="Oil supply cut", status="active")
        await insight_service.create_insight(title="Oil demand", status="draft")
        await insight_service.create_insight(title="Gold", status="active")

        active = await insight_service.list_insights(status="active")
        oil = await insight_service.list_insights(query="OIL")

        assert sorted(i["title"] for i in active["items"]) == ["Gold", "Oil supply cut"]
        assert oil["total"] == 2

    async def test_list_rejects_unknown_status(self, stores):
        with pytest.raises(ValidationError):
            await insight_service.list_insights(status="paused")


@pytest.mark.asyncio
class TestSearch:
    async def test_title_hits_rank_before_tags_and_thesis(self, stores):
        thesis_hit = await insight_service.create_insight(
            title="Shipping", thesis="Freight rates track lithium demand closely."
        )
        tag_hit = await insight_service.create_insight(title="Batteries", tags=["lithium"])
        title_hit = await insight_service.create_insight(title="Lithium glut")

        result = await insight_service.search_insights("lithium")

        assert [hit["insight"]["id"] for hit in result["items"]] == [
            title_hit["id"],
            tag_hit["id"],
            thesis_hit["id"],
        ]
        assert [hit["score"] for hit in result["items"]] == [0.0, 1.0, 2.0]
        assert "<mark>lithium</mark>" in result["items"][2]["snippet"]

    async def test_search_skips_deleted(self, stores):
        created = await insight_service.create_insight(title="Nickel")
        await insight_service.remove_insight(created["id"])
        result = await insight_service.search_insights("nickel")
        assert result["total"] == 0

    async def test_empty_query(self, stores):
        with pytest.raises(ValidationError):
            await insight_service.search_insights("  ")

    async def test_non_ascii_tag_hit(self, stores):
        created = await insight_service.create_insight(title="Consumption rebound", tags=["白酒"])

        result = await insight_service.search_insights("白酒")

        assert result["total"] == 1
        assert result["items"][0]["insight"]["id"] == created["id"]
        assert result["items"][0]["score"] == 1.0


@pytest.mark.asyncio
class TestFacts:
    async def test_fact_lifecycle(self, stores):
        fact = await insight_service.create_insight_fact("OPEC meets on Friday")
        page = await insight_service.list_insight_facts()
        assert [f["content"] for f in page["items"]] == ["OPEC meets on Friday"]

        await insight_service.remove_insight_fact(fact["id"])
        with pytest.raises(NotFoundError):
            await insight_service.remove_insight_fact(fact["id"])


@pytest.mark.asyncio
class TestScopeRules:
    async def test_upsert_is_keyed_by_content(self, stores):
        insight = await insight_service.create_insight(title="T")

        first = await insight_service.upsert_scope_rule(insight["id"], "tag", "sector:tech")
        again = await insight_service.upsert_scope_rule(insight["id"], "tag", "sector:tech", enabled=False)

        assert again["id"] == first["id"]
        assert again["enabled"] is False

    async def test_rewrite_to_existing_rule_conflicts(self, stores):
        insight = await insight_service.create_insight(title="T")
        await insight_service.upsert_scope_rule(insight["id"], "symbol", "AAA")
        other = await insight_service.upsert_scope_rule(insight["id"], "symbol", "BBB")

        with pytest.raises(ConflictError):
            await insight_service.upsert_scope_rule(
                insight["id"], "symbol", "AAA", rule_id=other["id"]
            )

    async def test_concurrent_upserts_of_one_rule_keep_one_row(self, stores):
        insight = await insight_service.create_insight(title="T")

        rules = await asyncio.gather(
            *(insight_service.upsert_scope_rule(insight["id"], "tag", "sector:tech") for _ in range(6))
        )

        assert len({rule["id"] for rule in rules}) == 1
        detail = await insight_service.get_insight_detail(insight["id"])
        assert len(detail["scope_rules"]) == 1

    async def test_rejects_unknown_scope_type(self, stores):
        insight = await insight_service.create_insight(title="T")
        with pytest.raises(ValidationError):
            await insight_service.upsert_scope_rule(insight["id"], "sector", "tech")

    async def test_unknown_insight(self, stores):
        with pytest.raises(NotFoundError):
            await insight_service.upsert_scope_rule("missing", "symbol", "AAA")

    async def test_remove(self, stores):
        insight = await insight_service.create_insight(title="T")
        rule = await insight_service.upsert_scope_rule(insight["id"], "symbol", "AAA")
        await insight_service.remove_scope_rule(rule["id"])

        detail = await insight_service.get_insight_detail(insight["id"])
        assert detail["scope_rules"] == []


@pytest.mark.asyncio
class TestChannelsAndPoints:
    async def test_priority_defaults_and_is_floored(self, stores):
        insight = await insight_service.create_insight(title="T")

        default = await insight_service.upsert_effect_channel(
            insight["id"], "*", "factor.momentum.20d", "first_order", "add"
        )
        floored = await insight_service.upsert_effect_channel(
            insight["id"], "*", "factor.momentum.20d", "first_order", "add", priority=7.9
        )

        assert default["priority"] == 100
        assert floored["priority"] == 7

    @pytest.mark.parametrize(
        "overrides",
        [
            {"stage": "third_order"},
            {"operator": "pow"},
            {"priority": 1_000_001},
            {"priority": float("nan")},
            {"metric_key": ""},
        ],
    )
    async def test_rejects_invalid_channel(self, stores, overrides):
        insight = await insight_service.create_insight(title="T")
        args = {
            "method_key": "*",
            "metric_key": "factor.momentum.20d",
            "stage": "first_order",
            "operator": "add",
            **overrides,
        }
        with pytest.raises(ValidationError):
            await insight_service.upsert_effect_channel(insight["id"], **args)

    async def test_channel_cannot_move_to_another_insight(self, stores):
        owner = await insight_service.create_insight(title="Owner")
        other = await insight_service.create_insight(title="Other")
        channel = await insight_service.upsert_effect_channel(
            owner["id"], "*", "factor.momentum.20d", "first_order", "add"
        )

        with pytest.raises(ConflictError):
            await insight_service.upsert_effect_channel(
                other["id"], "*", "factor.momentum.20d", "first_order", "mul",
                channel_id=channel["id"],
            )

        detail = await insight_service.get_insight_detail(owner["id"])
        assert [c["operator"] for c in detail["effect_channels"]] == ["add"]

    async def test_points_overwrite_by_date(self, stores):
        insight = await insight_service.create_insight(title="T")
        channel = await insight_service.upsert_effect_channel(
            insight["id"], "*", "factor.momentum.20d", "first_order", "add"
        )

        first = await insight_service.upsert_effect_point(channel["id"], "2026-01-15", 0.05)
        second = await insight_service.upsert_effect_point(channel["id"], "2026-01-15", 0.07)

        assert second["id"] == first["id"]
        assert second["effect_value"] == 0.07

    async def test_concurrent_writes_to_one_date_keep_one_point(self, stores):
        insight = await insight_service.create_insight(title="T")
        channel = await insight_service.upsert_effect_channel(
            insight["id"], "*", "factor.momentum.20d", "first_order", "add"
        )

        written = await asyncio.gather(
            *(insight_service.upsert_effect_point(channel["id"], "2026-01-15", 0.01 * n) for n in range(1, 7))
        )

        assert len({point["id"] for point in written}) == 1
        detail = await insight_service.get_insight_detail(insight["id"])
        assert len(detail["effect_points"]) == 1

    async def test_moving_point_onto_taken_date_conflicts(self, stores):
        insight = await insight_service.create_insight(title="T")
        channel = await insight_service.upsert_effect_channel(
            insight["id"], "*", "factor.momentum.20d", "first_order", "add"
        )
        await insight_service.upsert_effect_point(channel["id"], "2026-01-15", 0.05)
        other = await insight_service.upsert_effect_point(channel["id"], "2026-01-16", 0.06)

        with pytest.raises(ConflictError):
            await insight_service.upsert_effect_point(
                channel["id"], "2026-01-15", 0.08, point_id=other["id"]
            )

    async def test_point_needs_channel(self, stores):
        with pytest.raises(NotFoundError):
            await insight_service.upsert_effect_point("missing", "2026-01-15", 0.05)

    async def test_point_value_must_be_finite(self, stores):
        with pytest.raises(ValidationError):
            await insight_service.upsert_effect_point("missing", "2026-01-15", float("inf"))

    async def test_removing_channel_drops_points(self, stores):
        insight = await insight_service.create_insight(title="T")
        channel = await insight_service.upsert_effect_channel(
            insight["id"], "*", "factor.momentum.20d", "first_order", "add"
        )
        await insight_service.upsert_effect_point(channel["id"], "2026-01-15", 0.05)

        await insight_service.remove_effect_channel(channel["id"])

        detail = await insight_service.get_insight_detail(insight["id"])
        assert detail["effect_channels"] == []
        assert detail["effect_points"] == []
