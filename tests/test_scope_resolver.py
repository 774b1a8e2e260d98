"""Tests for scope rule resolution against reference data."""

from __future__ import annotations

import pytest
import pytest_asyncio

from valuator.domain.enums import ScopeType
from valuator.repositories import instrument_tags_orm as tags_repo
from valuator.repositories import watchlists_orm as watchlists_repo
from valuator.services.scope_resolver import resolve_scope


@pytest_asyncio.fixture
async def universe(market):
    await market.add_profile("600519.SH", kind="stock", asset_class="stock", market="CN", tags=["sector:consumer"])
    await market.add_profile("0700.HK", kind="stock", asset_class="stock", market="HK", tags=["sector:tech"])
    await market.add_profile("AAPL", kind="stock", asset_class="stock", market="us", tags=["sector:tech"])
    await market.add_profile("510300.SH", kind="fund", asset_class="etf", market="CN")
    await market.add_profile("000300.SH", kind="index", market="CN")
    await market.add_profile("CU2603", kind="futures", asset_class="futures", market="CN")
    await market.add_profile("USDCNY", kind="forex", market="FX")
    await market.add_index_tag("019547.SH", "kind:bond")
    return market


@pytest.mark.asyncio
class TestResolveScope:
    """Tests for resolve_scope."""

    async def test_symbol_is_literal(self, stores):
        assert await resolve_scope(ScopeType.SYMBOL, "ANY.SYM") == {"ANY.SYM"}

    async def test_blank_key_matches_nothing(self, stores):
        assert await resolve_scope(ScopeType.SYMBOL, "   ") == set()

    async def test_kind(self, universe):
        assert await resolve_scope("kind", "stock") == {"600519.SH", "0700.HK", "AAPL"}

    async def test_asset_class(self, universe):
        assert await resolve_scope("asset_class", "etf") == {"510300.SH"}

    async def test_market_is_case_insensitive(self, universe):
        assert await resolve_scope("market", "US") == {"AAPL"}

    async def test_provider_tag(self, universe):
        assert await resolve_scope("tag", "sector:tech") == {"0700.HK", "AAPL"}

    async def test_tag_unions_user_tags(self, universe):
        await tags_repo.add_tag("600519.SH", "sector:tech")
        assert await resolve_scope("tag", "sector:tech") == {"0700.HK", "AAPL", "600519.SH"}

    async def test_tag_falls_back_to_profile_tags(self, market):
        await market.add_profile("BABA", kind="stock", tags=["theme:ecommerce"], index_tags=False)
        assert await resolve_scope("tag", "theme:ecommerce") == {"BABA"}

    async def test_profile_tag_fallback_matches_non_ascii_tags(self, market):
        await market.add_profile("600519.SH", kind="stock", tags=["白酒"], index_tags=False)
        assert await resolve_scope("tag", "白酒") == {"600519.SH"}

    async def test_unknown_tag_is_empty(self, universe):
        assert await resolve_scope("tag", "sector:none") == set()

    async def test_domain_etf_includes_funds(self, universe):
        assert await resolve_scope("domain", "etf") == {"510300.SH"}

    async def test_domain_hk_stock(self, universe):
        assert await resolve_scope("domain", "hk_stock") == {"0700.HK"}

    async def test_domain_fx(self, universe):
        assert await resolve_scope("domain", "fx") == {"USDCNY"}

    async def test_domain_bond_reads_tag_index(self, universe):
        assert await resolve_scope("domain", "bond") == {"019547.SH"}

    async def test_unknown_and_macro_domains_are_empty(self, universe):
        assert await resolve_scope("domain", "macro") == set()
        assert await resolve_scope("domain", "crypto") == set()

    async def test_watchlist_groups(self, stores):
        await watchlists_repo.add_item("AAPL", group_name="core")
        await watchlists_repo.add_item("MSFT")
        await watchlists_repo.add_item("TSLA", group_name="")
        assert await resolve_scope("watchlist", "core") == {"AAPL"}
        assert await resolve_scope("watchlist", "default") == {"MSFT", "TSLA"}
        assert await resolve_scope("watchlist", "all") == {"AAPL", "MSFT", "TSLA"}


@pytest.mark.asyncio
class TestBusinessStoreCollaborators:
    """Watchlist and user-tag writes feed the resolvers."""

    async def test_watchlist_item_moves_between_groups(self, stores):
        await watchlists_repo.add_item("AAPL", name="Apple", group_name="core")
        moved = await watchlists_repo.add_item("AAPL", group_name="trading")

        assert moved["group_name"] == "trading"
        assert [item["symbol"] for item in await watchlists_repo.list_items()] == ["AAPL"]
        assert await resolve_scope("watchlist", "core") == set()

    async def test_removed_watchlist_item_drops_out(self, stores):
        await watchlists_repo.add_item("AAPL", group_name="core")
        assert await watchlists_repo.remove_item("AAPL") is True
        assert await watchlists_repo.remove_item("AAPL") is False
        assert await resolve_scope("watchlist", "core") == set()

    async def test_user_tags(self, stores):
        await tags_repo.add_tag("AAPL", "theme:ai")
        await tags_repo.add_tag("AAPL", "theme:ai")
        await tags_repo.add_tag("AAPL", "quality")

        assert await tags_repo.list_tags_for_symbol("AAPL") == ["quality", "theme:ai"]
        assert await resolve_scope("tag", "theme:ai") == {"AAPL"}

        await tags_repo.remove_tag("AAPL", "theme:ai")
        assert await resolve_scope("tag", "theme:ai") == set()
