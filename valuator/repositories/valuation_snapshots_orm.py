"""Valuation snapshot repository using SQLAlchemy ORM.

One row per (symbol, as-of date, method key); the last write wins.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import select

from valuator.core.data_helpers import utc_now
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session, upsert_statement
from valuator.database.orm import ValuationSnapshot


logger = get_logger("repositories.valuation_snapshots_orm")


def _snapshot_to_dict(snapshot: ValuationSnapshot) -> dict[str, Any]:
    return {
        "id": snapshot.id,
        "symbol": snapshot.symbol,
        "as_of_date": snapshot.as_of_date.isoformat(),
        "method_key": snapshot.method_key,
        "method_version_id": snapshot.method_version_id,
        "base_metrics": dict(snapshot.base_metrics or {}),
        "adjusted_metrics": dict(snapshot.adjusted_metrics or {}),
        "applied_effects": list(snapshot.applied_effects or []),
        "created_at": snapshot.created_at,
        "computed_at": snapshot.updated_at,
    }


async def upsert_snapshot(
    symbol: str,
    as_of_date: str,
    method_key: str,
    method_version_id: str | None,
    base_metrics: dict[str, float | None],
    adjusted_metrics: dict[str, float | None],
    applied_effects: list[dict[str, Any]],
) -> dict[str, Any]:
    """Insert or overwrite the snapshot for (symbol, as_of_date, method_key).

    A single ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent previews of
    the same key never collide on ``uq_valuation_snapshot``.
    """
    now = utc_now()
    day = date.fromisoformat(as_of_date)
    async with get_business_session() as session:
        stmt = upsert_statement(session, ValuationSnapshot).values(
            id=str(uuid.uuid4()),
            symbol=symbol,
            as_of_date=day,
            method_key=method_key,
            method_version_id=method_version_id,
            base_metrics=base_metrics,
            adjusted_metrics=adjusted_metrics,
            applied_effects=applied_effects,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol", "as_of_date", "method_key"],
            set_={
                "method_version_id": stmt.excluded.method_version_id,
                "base_metrics": stmt.excluded.base_metrics,
                "adjusted_metrics": stmt.excluded.adjusted_metrics,
                "applied_effects": stmt.excluded.applied_effects,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await session.execute(stmt)
        result = await session.execute(
            select(ValuationSnapshot).where(
                ValuationSnapshot.symbol == symbol,
                ValuationSnapshot.as_of_date == day,
                ValuationSnapshot.method_key == method_key,
            )
        )
        snapshot = result.scalar_one()
        await session.commit()
        return _snapshot_to_dict(snapshot)


async def get_snapshot(symbol: str, as_of_date: str, method_key: str) -> dict[str, Any] | None:
    async with get_business_session() as session:
        result = await session.execute(
            select(ValuationSnapshot).where(
                ValuationSnapshot.symbol == symbol,
                ValuationSnapshot.as_of_date == date.fromisoformat(as_of_date),
                ValuationSnapshot.method_key == method_key,
            )
        )
        snapshot = result.scalar_one_or_none()
        return _snapshot_to_dict(snapshot) if snapshot else None


async def list_snapshots_for_symbol(symbol: str, limit: int) -> list[dict[str, Any]]:
    async with get_business_session() as session:
        result = await session.execute(
            select(ValuationSnapshot)
            .where(ValuationSnapshot.symbol == symbol)
            .order_by(ValuationSnapshot.as_of_date.desc(), ValuationSnapshot.method_key)
            .limit(limit)
        )
        return [_snapshot_to_dict(s) for s in result.scalars()]
