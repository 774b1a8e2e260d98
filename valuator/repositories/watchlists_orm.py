"""Watchlist repository using SQLAlchemy ORM.

Flat watchlist membership grouped by ``group_name``; items with no group
belong to the ``default`` group.

Usage:
    from valuator.repositories.watchlists_orm import (
        add_item, remove_item, list_items, list_group_symbols,
    )
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, or_, select

from valuator.core.data_helpers import utc_now
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session
from valuator.database.orm import WatchlistItem


logger = get_logger("repositories.watchlists_orm")

DEFAULT_GROUP = "default"
ALL_GROUPS = "all"


def _item_to_dict(item: WatchlistItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "symbol": item.symbol,
        "name": item.name,
        "group_name": item.group_name,
        "note": item.note,
        "created_at": item.created_at,
    }


async def add_item(
    symbol: str,
    name: str | None = None,
    group_name: str | None = None,
    note: str | None = None,
) -> dict[str, Any]:
    """Add a symbol to the watchlist, or move it to another group.

    Args:
        symbol: Instrument symbol (unique across the watchlist)
        name: Optional display name
        group_name: Group; None places it in the default group
        note: Optional note

    Returns:
        Watchlist item as dict
    """
    async with get_business_session() as session:
        result = await session.execute(
            select(WatchlistItem).where(WatchlistItem.symbol == symbol)
        )
        item = result.scalar_one_or_none()
        if item is None:
            item = WatchlistItem(symbol=symbol, created_at=utc_now())
            session.add(item)
        item.name = name
        item.group_name = group_name
        item.note = note
        await session.commit()
        await session.refresh(item)
        return _item_to_dict(item)


async def remove_item(symbol: str) -> bool:
    """Remove a symbol from the watchlist. Returns True if a row was deleted."""
    async with get_business_session() as session:
        result = await session.execute(
            delete(WatchlistItem).where(WatchlistItem.symbol == symbol)
        )
        await session.commit()
        return result.rowcount > 0


async def list_items() -> list[dict[str, Any]]:
    async with get_business_session() as session:
        result = await session.execute(select(WatchlistItem).order_by(WatchlistItem.symbol))
        return [_item_to_dict(item) for item in result.scalars()]


async def list_group_symbols(group: str) -> set[str]:
    """Symbols in a watchlist group.

    ``all`` returns every member; ``default`` also matches items with a null
    or empty group.
    """
    stmt = select(WatchlistItem.symbol)
    if group != ALL_GROUPS:
        condition = WatchlistItem.group_name == group
        if group == DEFAULT_GROUP:
            condition = or_(
                condition,
                WatchlistItem.group_name.is_(None),
                WatchlistItem.group_name == "",
            )
        stmt = stmt.where(condition)

    async with get_business_session() as session:
        result = await session.execute(stmt.order_by(WatchlistItem.symbol))
        return set(result.scalars().all())
