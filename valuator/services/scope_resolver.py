"""Scope resolver: turn one scope predicate into a concrete symbol set.

Each scope type has exactly one resolver, dispatched through ``RESOLVERS``.
Predicates are evaluated against current reference data. A predicate that
matches nothing yields an empty set; unknown scope types never reach this
module because they are rejected when the rule is written.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from sqlalchemy import func

from valuator.core.logging import get_logger
from valuator.database.market_orm import InstrumentProfile
from valuator.domain.enums import DataDomain, ScopeType
from valuator.repositories import instrument_tags_orm as tags_repo
from valuator.repositories import market_data_orm as market_repo
from valuator.repositories import watchlists_orm as watchlists_repo


logger = get_logger("services.scope_resolver")

BOND_TAGS = ["kind:bond", "domain:bond"]

Resolver = Callable[[str], Awaitable[set[str]]]


def _kind_is(kind: str) -> Any:
    return func.lower(InstrumentProfile.kind) == kind


def _asset_class_is(asset_class: str) -> Any:
    return func.lower(InstrumentProfile.asset_class) == asset_class


def _market_is(market: str) -> Any:
    return func.upper(func.coalesce(InstrumentProfile.market, "")) == market


# Domain id -> predicates OR-ed together against instrument profiles.
DOMAIN_PREDICATES: dict[DataDomain, Callable[[], list[Any]]] = {
    DataDomain.STOCK: lambda: [_kind_is("stock")],
    DataDomain.ETF: lambda: [_asset_class_is("etf"), _kind_is("fund")],
    DataDomain.INDEX: lambda: [_kind_is("index")],
    DataDomain.PUBLIC_FUND: lambda: [_kind_is("fund")],
    DataDomain.FUTURES: lambda: [_kind_is("futures")],
    DataDomain.SPOT: lambda: [_kind_is("spot")],
    DataDomain.FX: lambda: [_kind_is("forex")],
    DataDomain.HK_STOCK: lambda: [_kind_is("stock") & _market_is("HK")],
    DataDomain.US_STOCK: lambda: [_kind_is("stock") & _market_is("US")],
}


async def resolve_symbol(key: str) -> set[str]:
    return {key}


async def resolve_tag(key: str) -> set[str]:
    """Union of the provider tag index and user tags."""
    provider = await market_repo.list_symbols_by_provider_tag(key)
    user = await tags_repo.list_symbols_by_user_tag(key)
    return provider | user


async def resolve_kind(key: str) -> set[str]:
    return await market_repo.list_symbols_by_kind(key)


async def resolve_asset_class(key: str) -> set[str]:
    return await market_repo.list_symbols_by_asset_class(key)


async def resolve_market(key: str) -> set[str]:
    return await market_repo.list_symbols_by_market(key)


async def resolve_domain(key: str) -> set[str]:
    """Map a data domain to profile predicates.

    Bonds often have no profile row, so the bond domain reads the tag index.
    Domains without a mapping (e.g. ``macro``) resolve to nothing.
    """
    try:
        domain = DataDomain(key)
    except ValueError:
        return set()
    if domain is DataDomain.BOND:
        return await market_repo.list_symbols_by_provider_tags(BOND_TAGS)
    predicates = DOMAIN_PREDICATES.get(domain)
    if predicates is None:
        return set()
    return await market_repo.list_symbols_by_domain_predicate(*predicates())


async def resolve_watchlist(key: str) -> set[str]:
    return await watchlists_repo.list_group_symbols(key)


RESOLVERS: dict[ScopeType, Resolver] = {
    ScopeType.SYMBOL: resolve_symbol,
    ScopeType.TAG: resolve_tag,
    ScopeType.KIND: resolve_kind,
    ScopeType.ASSET_CLASS: resolve_asset_class,
    ScopeType.MARKET: resolve_market,
    ScopeType.DOMAIN: resolve_domain,
    ScopeType.WATCHLIST: resolve_watchlist,
}


async def resolve_scope(scope_type: ScopeType | str, scope_key: str) -> set[str]:
    """Resolve one (scope_type, scope_key) predicate to symbols.

    Args:
        scope_type: Scope type (validated when the rule was written)
        scope_key: Predicate key, e.g. a tag, a kind or a watchlist group

    Returns:
        Set of matching symbols, possibly empty
    """
    key = scope_key.strip()
    if not key:
        return set()
    symbols = await RESOLVERS[ScopeType(scope_type)](key)
    logger.debug(
        f"Resolved {ScopeType(scope_type).value}:{key} to {len(symbols)} symbols",
        extra={"scope_type": ScopeType(scope_type).value, "scope_key": key, "count": len(symbols)},
    )
    return symbols
