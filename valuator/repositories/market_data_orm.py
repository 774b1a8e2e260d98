"""Market store repository using SQLAlchemy ORM.

Read-only lookups against instrument profiles, the provider tag index,
daily prices and daily basics.

Usage:
    from valuator.repositories.market_data_orm import (
        get_instrument_profile, list_symbols_by_provider_tag,
        list_recent_closes, get_latest_circ_mv,
    )
"""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import Text, cast, func, or_, select

from valuator.core.data_helpers import escape_like, safe_float
from valuator.core.logging import get_logger
from valuator.database.connection import get_market_session
from valuator.database.market_orm import (
    DailyBasic,
    DailyPrice,
    InstrumentProfile,
    InstrumentProfileTag,
)


logger = get_logger("repositories.market_data_orm")

PROVIDER_TAG_LIMIT = 50_000


# =============================================================================
# INSTRUMENT PROFILES
# =============================================================================


async def get_instrument_profile(symbol: str) -> dict[str, Any] | None:
    """Get kind, asset class, market and tags for a symbol.

    Args:
        symbol: Instrument symbol

    Returns:
        Profile dict or None if the market store has no profile row
    """
    async with get_market_session() as session:
        profile = await session.get(InstrumentProfile, symbol)
        if profile is None:
            return None
        return {
            "symbol": profile.symbol,
            "kind": profile.kind,
            "asset_class": profile.asset_class,
            "market": profile.market,
            "tags": list(profile.tags or []),
        }


async def list_symbols_where(*conditions: Any) -> set[str]:
    """Symbols of all profiles matching every condition."""
    async with get_market_session() as session:
        result = await session.execute(
            select(InstrumentProfile.symbol).where(*conditions).order_by(InstrumentProfile.symbol)
        )
        return set(result.scalars().all())


async def list_symbols_by_kind(kind: str) -> set[str]:
    return await list_symbols_where(func.lower(InstrumentProfile.kind) == kind.lower())


async def list_symbols_by_asset_class(asset_class: str) -> set[str]:
    return await list_symbols_where(
        func.lower(InstrumentProfile.asset_class) == asset_class.lower()
    )


async def list_symbols_by_market(market: str) -> set[str]:
    return await list_symbols_where(
        func.upper(func.coalesce(InstrumentProfile.market, "")) == market.upper()
    )


# =============================================================================
# PROVIDER TAG INDEX
# =============================================================================


async def list_symbols_by_provider_tag(tag: str) -> set[str]:
    """Symbols carrying a provider tag.

    Reads the tag index first; if the index has no rows for the tag, falls back
    to scanning the profiles' serialized tag arrays.
    """
    key = tag.strip()
    if not key:
        return set()

    async with get_market_session() as session:
        result = await session.execute(
            select(InstrumentProfileTag.symbol)
            .where(InstrumentProfileTag.tag == key)
            .order_by(InstrumentProfileTag.symbol)
            .limit(PROVIDER_TAG_LIMIT)
        )
        symbols = set(result.scalars().all())
        if symbols:
            return symbols

        pattern = f'%"{escape_like(key)}"%'
        result = await session.execute(
            select(InstrumentProfile.symbol)
            .where(cast(InstrumentProfile.tags, Text).like(pattern, escape="\\"))
            .order_by(InstrumentProfile.symbol)
            .limit(PROVIDER_TAG_LIMIT)
        )
        return set(result.scalars().all())


async def list_symbols_by_provider_tags(tags: list[str]) -> set[str]:
    """Symbols carrying any of the given tags in the tag index."""
    async with get_market_session() as session:
        result = await session.execute(
            select(InstrumentProfileTag.symbol)
            .where(InstrumentProfileTag.tag.in_(tags))
            .distinct()
        )
        return set(result.scalars().all())


async def list_symbols_by_domain_predicate(*predicates: Any) -> set[str]:
    """Profiles matching any predicate (OR), used for data-domain lookups."""
    return await list_symbols_where(or_(*predicates))


# =============================================================================
# PRICES & BASICS
# =============================================================================


async def list_recent_closes(symbol: str, as_of_date: date, limit: int) -> list[float]:
    """Close prices on or before ``as_of_date``, newest first.

    Rows with a null or non-finite close are skipped.

    Args:
        symbol: Instrument symbol
        as_of_date: Inclusive upper bound on trade date
        limit: Maximum number of rows to read

    Returns:
        List of closes in descending trade-date order
    """
    async with get_market_session() as session:
        result = await session.execute(
            select(DailyPrice.close)
            .where(
                DailyPrice.symbol == symbol,
                DailyPrice.trade_date <= as_of_date,
                DailyPrice.close.is_not(None),
            )
            .order_by(DailyPrice.trade_date.desc())
            .limit(limit)
        )
        closes = [safe_float(value) for value in result.scalars().all()]
        return [value for value in closes if value is not None]


async def get_latest_circ_mv(symbol: str, as_of_date: date) -> float | None:
    """Most recent circulating market value on or before ``as_of_date``."""
    async with get_market_session() as session:
        result = await session.execute(
            select(DailyBasic.circ_mv)
            .where(DailyBasic.symbol == symbol, DailyBasic.trade_date <= as_of_date)
            .order_by(DailyBasic.trade_date.desc())
            .limit(1)
        )
        return safe_float(result.scalar_one_or_none())
