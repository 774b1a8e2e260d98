"""Target exclusions, materialized targets and effect candidate lookups.

The materialized target set of an insight is replaced wholesale inside one
transaction; readers see either the previous set or the new one.

Usage:
    from valuator.repositories.insight_targets_orm import (
        replace_materialized_targets, list_exclusion_symbols,
        list_candidate_channels, list_points_for_channels,
    )
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import delete, exists, or_, select

from valuator.core.data_helpers import safe_float, utc_now
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session, upsert_statement
from valuator.database.orm import (
    Insight,
    InsightEffectChannel,
    InsightEffectPoint,
    InsightMaterializedTarget,
    InsightTargetExclusion,
)
from valuator.domain.effects import EffectPoint
from valuator.domain.enums import InsightStatus

from .insights_orm import exclusion_to_dict


logger = get_logger("repositories.insight_targets_orm")

WILDCARD_METHOD_KEY = "*"


# =============================================================================
# TARGET EXCLUSIONS
# =============================================================================


async def upsert_target_exclusion(
    insight_id: str, symbol: str, reason: str | None
) -> dict[str, Any]:
    """Exclude a symbol from an insight (updates the reason if already excluded)."""
    now = utc_now()
    async with get_business_session() as session:
        stmt = upsert_statement(session, InsightTargetExclusion).values(
            id=str(uuid.uuid4()),
            insight_id=insight_id,
            symbol=symbol,
            reason=reason,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["insight_id", "symbol"],
            set_={"reason": stmt.excluded.reason, "updated_at": stmt.excluded.updated_at},
        )
        await session.execute(stmt)
        result = await session.execute(
            select(InsightTargetExclusion).where(
                InsightTargetExclusion.insight_id == insight_id,
                InsightTargetExclusion.symbol == symbol,
            )
        )
        exclusion = result.scalar_one()
        await session.commit()
        return exclusion_to_dict(exclusion)


async def delete_target_exclusion(insight_id: str, symbol: str) -> bool:
    async with get_business_session() as session:
        result = await session.execute(
            delete(InsightTargetExclusion).where(
                InsightTargetExclusion.insight_id == insight_id,
                InsightTargetExclusion.symbol == symbol,
            )
        )
        await session.commit()
        return result.rowcount > 0


async def list_exclusion_symbols(insight_id: str) -> set[str]:
    async with get_business_session() as session:
        result = await session.execute(
            select(InsightTargetExclusion.symbol).where(
                InsightTargetExclusion.insight_id == insight_id
            )
        )
        return {symbol.strip() for symbol in result.scalars() if symbol and symbol.strip()}


# =============================================================================
# MATERIALIZED TARGETS
# =============================================================================


async def replace_materialized_targets(
    insight_id: str,
    sources_by_symbol: Mapping[str, Sequence[tuple[str, str]]],
    materialized_at: datetime,
) -> int:
    """Atomically swap an insight's target rows for a freshly computed set.

    Args:
        insight_id: Insight whose targets are replaced
        sources_by_symbol: symbol -> [(scope_type, scope_key), ...] for surviving symbols
        materialized_at: Timestamp stamped on every new row

    Returns:
        Number of rows inserted
    """
    rows = [
        InsightMaterializedTarget(
            id=str(uuid.uuid4()),
            insight_id=insight_id,
            symbol=symbol,
            source_scope_type=scope_type,
            source_scope_key=scope_key,
            materialized_at=materialized_at,
        )
        for symbol, sources in sources_by_symbol.items()
        for scope_type, scope_key in sources
    ]
    async with get_business_session() as session:
        async with session.begin():
            await session.execute(
                delete(InsightMaterializedTarget).where(
                    InsightMaterializedTarget.insight_id == insight_id
                )
            )
            session.add_all(rows)
    return len(rows)


async def list_materialized_symbols(insight_id: str) -> list[str]:
    async with get_business_session() as session:
        result = await session.execute(
            select(InsightMaterializedTarget.symbol)
            .where(InsightMaterializedTarget.insight_id == insight_id)
            .distinct()
            .order_by(InsightMaterializedTarget.symbol)
        )
        return list(result.scalars().all())


async def list_scopes_for_symbol(symbol: str) -> dict[str, list[str]]:
    """insight_id -> contributing "type:key" sources for a materialized symbol."""
    async with get_business_session() as session:
        result = await session.execute(
            select(
                InsightMaterializedTarget.insight_id,
                InsightMaterializedTarget.source_scope_type,
                InsightMaterializedTarget.source_scope_key,
            )
            .where(InsightMaterializedTarget.symbol == symbol)
            .order_by(
                InsightMaterializedTarget.insight_id,
                InsightMaterializedTarget.source_scope_type,
                InsightMaterializedTarget.source_scope_key,
            )
        )
        scopes: dict[str, list[str]] = {}
        for insight_id, scope_type, scope_key in result.all():
            source = f"{scope_type}:{scope_key}"
            bucket = scopes.setdefault(insight_id, [])
            if source not in bucket:
                bucket.append(source)
        return scopes


# =============================================================================
# EFFECT CANDIDATES
# =============================================================================


async def list_candidate_channels(
    symbol: str, as_of_date: str, method_key: str
) -> list[dict[str, Any]]:
    """Enabled channels that may act on ``symbol`` at ``as_of_date``.

    A channel qualifies when its insight is active, not soft-deleted, valid on
    the date, currently materializes the symbol and has not excluded it, and
    the channel targets ``method_key`` or the wildcard.
    """
    day = date.fromisoformat(as_of_date)
    excluded = exists().where(
        InsightTargetExclusion.insight_id == Insight.id,
        InsightTargetExclusion.symbol == symbol,
    )
    stmt = (
        select(
            InsightEffectChannel.id,
            InsightEffectChannel.metric_key,
            InsightEffectChannel.stage,
            InsightEffectChannel.operator,
            InsightEffectChannel.priority,
            InsightEffectChannel.created_at,
            Insight.id,
            Insight.title,
        )
        .select_from(InsightMaterializedTarget)
        .join(Insight, Insight.id == InsightMaterializedTarget.insight_id)
        .join(InsightEffectChannel, InsightEffectChannel.insight_id == Insight.id)
        .where(
            InsightMaterializedTarget.symbol == symbol,
            Insight.deleted_at.is_(None),
            Insight.status == InsightStatus.ACTIVE.value,
            InsightEffectChannel.enabled.is_(True),
            or_(Insight.valid_from.is_(None), Insight.valid_from <= day),
            or_(Insight.valid_to.is_(None), Insight.valid_to >= day),
            InsightEffectChannel.method_key.in_([method_key, WILDCARD_METHOD_KEY]),
            ~excluded,
        )
        .distinct()
    )
    async with get_business_session() as session:
        result = await session.execute(stmt)
        return [
            {
                "channel_id": channel_id,
                "metric_key": metric_key,
                "stage": stage,
                "operator": operator,
                "priority": priority,
                "created_at": created_at,
                "insight_id": insight_id,
                "insight_title": insight_title,
            }
            for (
                channel_id,
                metric_key,
                stage,
                operator,
                priority,
                created_at,
                insight_id,
                insight_title,
            ) in result.all()
        ]


async def list_points_for_channels(channel_ids: Sequence[str]) -> dict[str, tuple[EffectPoint, ...]]:
    """channel_id -> points sorted by date (non-finite values dropped)."""
    if not channel_ids:
        return {}
    async with get_business_session() as session:
        result = await session.execute(
            select(
                InsightEffectPoint.channel_id,
                InsightEffectPoint.effect_date,
                InsightEffectPoint.effect_value,
            )
            .where(InsightEffectPoint.channel_id.in_(list(channel_ids)))
            .order_by(InsightEffectPoint.channel_id, InsightEffectPoint.effect_date)
        )
        points: dict[str, list[EffectPoint]] = {}
        for channel_id, effect_date, effect_value in result.all():
            value = safe_float(effect_value)
            if value is not None:
                points.setdefault(channel_id, []).append(
                    EffectPoint(date=effect_date.isoformat(), value=value)
                )
        return {channel_id: tuple(items) for channel_id, items in points.items()}
