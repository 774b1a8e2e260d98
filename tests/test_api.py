"""HTTP-level tests for the API routers."""

from __future__ import annotations

from datetime import date

import pytest


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"business_db": True, "market_db": True}


@pytest.mark.asyncio
class TestInsightRoutes:
    async def test_create_get_patch_delete(self, async_client):
        created = await async_client.post(
            "/insights", json={"title": "Rate cuts", "tags": ["macro"], "status": "active"}
        )
        assert created.status_code == 201
        insight_id = created.json()["id"]

        fetched = await async_client.get(f"/insights/{insight_id}")
        assert fetched.json()["title"] == "Rate cuts"
        assert fetched.json()["scope_rules"] == []

        patched = await async_client.patch(f"/insights/{insight_id}", json={"thesis": "Cuts by June"})
        assert patched.status_code == 200
        assert patched.json()["thesis"] == "Cuts by June"
        assert patched.json()["status"] == "active"

        deleted = await async_client.delete(f"/insights/{insight_id}")
        assert deleted.status_code == 204

        listed = await async_client.get("/insights", params={"status": "deleted"})
        assert listed.json()["total"] == 1

    async def test_validation_error_shape(self, async_client):
        response = await async_client.post("/insights", json={"title": "   "})
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["status"] == 422
        assert body["details"] == {"field": "title"}

    async def test_not_found_shape(self, async_client):
        response = await async_client.get("/insights/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"
        assert "X-Request-ID" in response.headers

    async def test_search(self, async_client):
        await async_client.post("/insights", json={"title": "Copper rally"})
        response = await async_client.get("/insights/search", params={"q": "copper"})
        assert response.status_code == 200
        assert response.json()["items"][0]["insight"]["title"] == "Copper rally"

    async def test_facts(self, async_client):
        created = await async_client.post("/insights/facts", json={"content": "CPI beats"})
        assert created.status_code == 201
        listed = await async_client.get("/insights/facts")
        assert listed.json()["total"] == 1
        deleted = await async_client.delete(f"/insights/facts/{created.json()['id']}")
        assert deleted.status_code == 204

    async def test_materialize_and_exclude(self, async_client, market):
        for symbol in ("AAA", "BBB"):
            await market.add_profile(symbol, kind="stock")
        insight_id = (await async_client.post("/insights", json={"title": "Stocks"})).json()["id"]

        rule = await async_client.put(
            f"/insights/{insight_id}/scope-rules", json={"scope_type": "kind", "scope_key": "stock"}
        )
        assert rule.status_code == 200

        materialized = await async_client.post(f"/insights/{insight_id}/materialize")
        assert materialized.json()["symbols"] == ["AAA", "BBB"]

        excluded = await async_client.post(
            f"/insights/{insight_id}/exclusions", json={"symbol": "AAA", "reason": "halted"}
        )
        assert excluded.json()["symbols"] == ["BBB"]

        restored = await async_client.delete(f"/insights/{insight_id}/exclusions/AAA")
        assert restored.json()["symbols"] == ["AAA", "BBB"]

        refreshed = await async_client.post("/insights/refresh")
        assert refreshed.json()["refreshed"] == 1


@pytest.mark.asyncio
class TestRequestSchemas:
    """Typed request bodies reject bad input before any service call."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"stage": "third_order"},
            {"operator": "pow"},
            {"priority": 1_000_001},
            {"method_key": "not a key"},
        ],
    )
    async def test_invalid_channel_body(self, async_client, overrides):
        insight_id = (await async_client.post("/insights", json={"title": "T"})).json()["id"]
        body = {
            "method_key": "*",
            "metric_key": "factor.momentum.20d",
            "stage": "first_order",
            "operator": "add",
            **overrides,
        }

        response = await async_client.put(f"/insights/{insight_id}/channels", json=body)

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        detail = await async_client.get(f"/insights/{insight_id}")
        assert detail.json()["effect_channels"] == []

    async def test_fractional_priority_at_upper_bound_is_floored(self, async_client):
        insight_id = (await async_client.post("/insights", json={"title": "T"})).json()["id"]
        response = await async_client.put(
            f"/insights/{insight_id}/channels",
            json={
                "method_key": "builtin.generic.factor",
                "metric_key": "factor.momentum.20d",
                "stage": "output",
                "operator": "mul",
                "priority": 1_000_000.5,
            },
        )
        assert response.status_code == 200
        assert response.json()["priority"] == 1_000_000

    async def test_insight_window_dates_are_parsed(self, async_client):
        bad = await async_client.post("/insights", json={"title": "T", "valid_from": "2026-13-01"})
        assert bad.status_code == 422

        good = await async_client.post(
            "/insights", json={"title": "T", "status": "active", "valid_from": "2026-01-01"}
        )
        assert good.status_code == 201
        assert good.json()["valid_from"] == "2026-01-01"
        assert good.json()["status"] == "active"

    async def test_unknown_formula_is_rejected(self, async_client):
        await async_client.post("/valuation-methods", json={"method_key": "desk.fx", "name": "FX"})
        response = await async_client.post(
            "/valuation-methods/desk.fx/versions",
            json={"graph": [{"key": "market.price", "label": "Price"}], "formula_id": "magic_v9"},
        )
        assert response.status_code == 422

    async def test_openapi_documents_enums(self):
        from valuator.api.app import create_api_app

        schemas = create_api_app().openapi()["components"]["schemas"]
        assert schemas["EffectStage"]["enum"] == [
            "base", "first_order", "second_order", "output", "risk"
        ]
        assert schemas["ScopeMode"]["enum"] == ["include", "exclude"]


@pytest.mark.asyncio
class TestValuationMethodRoutes:
    async def test_list_and_detail(self, async_client):
        listed = await async_client.get("/valuation-methods")
        assert listed.status_code == 200
        assert listed.json()["total"] == 6

        detail = await async_client.get("/valuation-methods/builtin.spot.carry")
        assert detail.json()["versions"][0]["formula_manifest"]["formulaId"] == "spot_carry_v1"

    async def test_editing_builtin_is_invariant_violation(self, async_client):
        response = await async_client.patch(
            "/valuation-methods/builtin.spot.carry", json={"name": "Mine now"}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "INVARIANT_VIOLATION"

    async def test_clone_publish_activate(self, async_client):
        cloned = await async_client.post(
            "/valuation-methods/builtin.equity.factor/clone",
            json={"target_method_key": "desk.equity"},
        )
        assert cloned.status_code == 201

        published = await async_client.post(
            "/valuation-methods/desk.equity/versions",
            json={"graph": [{"key": "market.price", "label": "Price"}], "formula_id": "generic_factor_v1"},
        )
        assert published.status_code == 201
        new_version = published.json()["versions"][0]
        assert new_version["version"] == 2

        activated = await async_client.put(
            "/valuation-methods/desk.equity/active-version", json={"version_id": new_version["id"]}
        )
        assert activated.json()["method"]["active_version_id"] == new_version["id"]

    async def test_duplicate_create_conflicts(self, async_client):
        payload = {"method_key": "desk.custom", "name": "Custom"}
        assert (await async_client.post("/valuation-methods", json=payload)).status_code == 201
        duplicate = await async_client.post("/valuation-methods", json=payload)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"] == "CONFLICT"


@pytest.mark.asyncio
class TestValuationRoutes:
    async def test_preview_and_snapshot(self, async_client, market, flat_closes):
        await market.add_closes("X", flat_closes, date(2026, 1, 15))

        preview = await async_client.post(
            "/valuation/preview", json={"symbol": "X", "as_of_date": "2026-01-15"}
        )
        assert preview.status_code == 200
        body = preview.json()
        assert body["not_applicable"] is False
        assert body["method_key"] == "builtin.generic.factor"
        assert body["base_metrics"]["factor.momentum.20d"] == pytest.approx(0.10)

        snapshot = await async_client.get("/valuation/snapshots/X/2026-01-15/builtin.generic.factor")
        assert snapshot.status_code == 200
        assert snapshot.json()["method_version_id"] == body["method_version_id"]

        listed = await async_client.get("/valuation/snapshots/X")
        assert len(listed.json()) == 1

    async def test_preview_without_prices_is_in_band(self, async_client):
        response = await async_client.post(
            "/valuation/preview", json={"symbol": "NOPE", "as_of_date": "2026-01-15"}
        )
        assert response.status_code == 200
        assert response.json()["not_applicable"] is True
        assert response.json()["reason"] == "missing price data"

    async def test_bad_date_is_rejected(self, async_client):
        response = await async_client.post(
            "/valuation/preview", json={"symbol": "X", "as_of_date": "yesterday"}
        )
        assert response.status_code == 422
