"""User instrument tag repository using SQLAlchemy ORM.

Usage:
    from valuator.repositories.instrument_tags_orm import (
        add_tag, remove_tag, list_symbols_by_user_tag,
    )
"""

from __future__ import annotations

from sqlalchemy import delete, select

from valuator.core.data_helpers import utc_now
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session
from valuator.database.orm import InstrumentTag


logger = get_logger("repositories.instrument_tags_orm")


async def add_tag(symbol: str, tag: str) -> None:
    """Attach a user tag to a symbol (no-op if already present)."""
    async with get_business_session() as session:
        result = await session.execute(
            select(InstrumentTag.id).where(
                InstrumentTag.symbol == symbol, InstrumentTag.tag == tag
            )
        )
        if result.scalar_one_or_none() is None:
            session.add(InstrumentTag(symbol=symbol, tag=tag, created_at=utc_now()))
            await session.commit()


async def remove_tag(symbol: str, tag: str) -> None:
    async with get_business_session() as session:
        await session.execute(
            delete(InstrumentTag).where(
                InstrumentTag.symbol == symbol, InstrumentTag.tag == tag
            )
        )
        await session.commit()


async def list_tags_for_symbol(symbol: str) -> list[str]:
    async with get_business_session() as session:
        result = await session.execute(
            select(InstrumentTag.tag)
            .where(InstrumentTag.symbol == symbol)
            .order_by(InstrumentTag.tag)
        )
        return list(result.scalars().all())


async def list_symbols_by_user_tag(tag: str) -> set[str]:
    """Symbols carrying a user tag."""
    key = tag.strip()
    if not key:
        return set()
    async with get_business_session() as session:
        result = await session.execute(
            select(InstrumentTag.symbol).where(InstrumentTag.tag == key).distinct()
        )
        return set(result.scalars().all())
