"""Scope rule, effect channel and effect point repository using SQLAlchemy ORM.

Usage:
    from valuator.repositories.insight_rules_orm import (
        upsert_scope_rule, list_enabled_scope_rules,
        upsert_effect_channel, upsert_effect_point,
    )
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from valuator.core.data_helpers import utc_now
from valuator.core.exceptions import ConflictError
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session, upsert_statement
from valuator.database.orm import (
    InsightEffectChannel,
    InsightEffectPoint,
    InsightScopeRule,
)

from .insights_orm import channel_to_dict, point_to_dict, scope_rule_to_dict


logger = get_logger("repositories.insight_rules_orm")


# =============================================================================
# SCOPE RULES
# =============================================================================


async def upsert_scope_rule(
    insight_id: str,
    scope_type: str,
    scope_key: str,
    mode: str,
    enabled: bool,
    rule_id: str | None = None,
) -> dict[str, Any]:
    """Create or update a scope rule.

    An existing ``rule_id`` is rewritten in place. Otherwise the natural key
    (insight, type, key, mode) decides: an existing row only has its
    ``enabled`` flag updated.

    Returns:
        The stored rule as dict
    """
    now = utc_now()
    natural_key = (
        InsightScopeRule.insight_id == insight_id,
        InsightScopeRule.scope_type == scope_type,
        InsightScopeRule.scope_key == scope_key,
        InsightScopeRule.mode == mode,
    )
    async with get_business_session() as session:
        rule = await session.get(InsightScopeRule, rule_id) if rule_id else None
        if rule is not None:
            clash = await session.execute(
                select(InsightScopeRule.id).where(*natural_key, InsightScopeRule.id != rule.id)
            )
            if clash.scalar_one_or_none() is not None:
                raise _duplicate_rule(scope_type, scope_key, mode)
            rule.insight_id = insight_id
            rule.scope_type = scope_type
            rule.scope_key = scope_key
            rule.mode = mode
            rule.enabled = enabled
            rule.updated_at = now
            try:
                await session.commit()
            except IntegrityError as e:
                raise _duplicate_rule(scope_type, scope_key, mode) from e
            return scope_rule_to_dict(rule)

        stmt = upsert_statement(session, InsightScopeRule).values(
            id=rule_id or str(uuid.uuid4()),
            insight_id=insight_id,
            scope_type=scope_type,
            scope_key=scope_key,
            mode=mode,
            enabled=enabled,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["insight_id", "scope_type", "scope_key", "mode"],
            set_={"enabled": stmt.excluded.enabled, "updated_at": stmt.excluded.updated_at},
        )
        await session.execute(stmt)
        result = await session.execute(select(InsightScopeRule).where(*natural_key))
        rule = result.scalar_one()
        await session.commit()
        return scope_rule_to_dict(rule)


def _duplicate_rule(scope_type: str, scope_key: str, mode: str) -> ConflictError:
    return ConflictError(
        message="An identical scope rule already exists for this insight",
        details={"scope_type": scope_type, "scope_key": scope_key, "mode": mode},
    )


async def delete_scope_rule(rule_id: str) -> bool:
    async with get_business_session() as session:
        result = await session.execute(
            delete(InsightScopeRule).where(InsightScopeRule.id == rule_id)
        )
        await session.commit()
        return result.rowcount > 0


async def list_enabled_scope_rules(insight_id: str) -> list[dict[str, Any]]:
    """Enabled rules of an insight in creation order."""
    async with get_business_session() as session:
        result = await session.execute(
            select(InsightScopeRule)
            .where(
                InsightScopeRule.insight_id == insight_id,
                InsightScopeRule.enabled.is_(True),
            )
            .order_by(InsightScopeRule.created_at.asc(), InsightScopeRule.id.asc())
        )
        return [scope_rule_to_dict(rule) for rule in result.scalars()]


# =============================================================================
# EFFECT CHANNELS
# =============================================================================


async def get_effect_channel(channel_id: str) -> dict[str, Any] | None:
    async with get_business_session() as session:
        channel = await session.get(InsightEffectChannel, channel_id)
        return channel_to_dict(channel) if channel else None


async def upsert_effect_channel(
    insight_id: str,
    method_key: str,
    metric_key: str,
    stage: str,
    operator: str,
    priority: int,
    enabled: bool,
    meta: dict[str, Any],
    channel_id: str | None = None,
) -> dict[str, Any]:
    """Create a channel, or rewrite it in place when ``channel_id`` exists."""
    now = utc_now()
    async with get_business_session() as session:
        channel = await session.get(InsightEffectChannel, channel_id) if channel_id else None
        if channel is not None and channel.insight_id != insight_id:
            raise ConflictError(
                message="Effect channel belongs to another insight",
                details={"channel_id": channel_id, "insight_id": channel.insight_id},
            )
        if channel is None:
            channel = InsightEffectChannel(
                id=channel_id or str(uuid.uuid4()),
                created_at=now,
            )
            session.add(channel)

        channel.insight_id = insight_id
        channel.method_key = method_key
        channel.metric_key = metric_key
        channel.stage = stage
        channel.operator = operator
        channel.priority = priority
        channel.enabled = enabled
        channel.meta = meta
        channel.updated_at = now
        await session.commit()
        return channel_to_dict(channel)


async def delete_effect_channel(channel_id: str) -> bool:
    """Delete a channel together with its points."""
    async with get_business_session() as session:
        await session.execute(
            delete(InsightEffectPoint).where(InsightEffectPoint.channel_id == channel_id)
        )
        result = await session.execute(
            delete(InsightEffectChannel).where(InsightEffectChannel.id == channel_id)
        )
        await session.commit()
        return result.rowcount > 0


# =============================================================================
# EFFECT POINTS
# =============================================================================


async def upsert_effect_point(
    channel_id: str,
    effect_date: str,
    effect_value: float,
    point_id: str | None = None,
) -> dict[str, Any]:
    """Create or update a point.

    An existing ``point_id`` moves that row, and its new date must be free.
    Otherwise the (channel, date) pair identifies the row, so writing the
    same date twice overwrites its value.
    """
    now = utc_now()
    day = date.fromisoformat(effect_date)
    async with get_business_session() as session:
        point = await session.get(InsightEffectPoint, point_id) if point_id else None
        if point is not None:
            clash = await session.execute(
                select(InsightEffectPoint.id).where(
                    InsightEffectPoint.channel_id == channel_id,
                    InsightEffectPoint.effect_date == day,
                    InsightEffectPoint.id != point.id,
                )
            )
            if clash.scalar_one_or_none() is not None:
                raise _taken_date(channel_id, effect_date)
            point.channel_id = channel_id
            point.effect_date = day
            point.effect_value = effect_value
            point.updated_at = now
            try:
                await session.commit()
            except IntegrityError as e:
                raise _taken_date(channel_id, effect_date) from e
            return point_to_dict(point)

        stmt = upsert_statement(session, InsightEffectPoint).values(
            id=point_id or str(uuid.uuid4()),
            channel_id=channel_id,
            effect_date=day,
            effect_value=effect_value,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["channel_id", "effect_date"],
            set_={"effect_value": stmt.excluded.effect_value, "updated_at": stmt.excluded.updated_at},
        )
        await session.execute(stmt)
        result = await session.execute(
            select(InsightEffectPoint).where(
                InsightEffectPoint.channel_id == channel_id,
                InsightEffectPoint.effect_date == day,
            )
        )
        point = result.scalar_one()
        await session.commit()
        return point_to_dict(point)


def _taken_date(channel_id: str, effect_date: str) -> ConflictError:
    return ConflictError(
        message="Channel already has a point on this date",
        details={"channel_id": channel_id, "effect_date": effect_date},
    )


async def delete_effect_point(point_id: str) -> bool:
    async with get_business_session() as session:
        result = await session.execute(
            delete(InsightEffectPoint).where(InsightEffectPoint.id == point_id)
        )
        await session.commit()
        return result.rowcount > 0
