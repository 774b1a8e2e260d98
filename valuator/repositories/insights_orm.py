"""Insights repository using SQLAlchemy ORM.

CRUD for insights and free-standing insight facts, plus the detail view that
gathers an insight's rules, channels, points, exclusions and targets.

Usage:
    from valuator.repositories.insights_orm import (
        create_insight, get_insight, get_insight_detail, list_insights,
        update_insight, soft_delete_insight, search_insights,
    )
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import Text, case, cast, delete, func, or_, select

from valuator.core.data_helpers import escape_like, utc_now
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session
from valuator.database.orm import (
    Insight,
    InsightEffectChannel,
    InsightEffectPoint,
    InsightFact,
    InsightMaterializedTarget,
    InsightScopeRule,
    InsightTargetExclusion,
)
from valuator.domain.enums import InsightStatus


logger = get_logger("repositories.insights_orm")

SNIPPET_RADIUS = 60


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _to_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


# =============================================================================
# ROW CONVERTERS
# =============================================================================


def insight_to_dict(insight: Insight) -> dict[str, Any]:
    return {
        "id": insight.id,
        "title": insight.title,
        "thesis": insight.thesis,
        "status": insight.status,
        "valid_from": _iso(insight.valid_from),
        "valid_to": _iso(insight.valid_to),
        "tags": list(insight.tags or []),
        "meta": dict(insight.meta or {}),
        "created_at": insight.created_at,
        "updated_at": insight.updated_at,
        "deleted_at": insight.deleted_at,
    }


def fact_to_dict(fact: InsightFact) -> dict[str, Any]:
    return {
        "id": fact.id,
        "content": fact.content,
        "created_at": fact.created_at,
        "updated_at": fact.updated_at,
    }


def scope_rule_to_dict(rule: InsightScopeRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "insight_id": rule.insight_id,
        "scope_type": rule.scope_type,
        "scope_key": rule.scope_key,
        "mode": rule.mode,
        "enabled": rule.enabled,
        "created_at": rule.created_at,
        "updated_at": rule.updated_at,
    }


def channel_to_dict(channel: InsightEffectChannel) -> dict[str, Any]:
    return {
        "id": channel.id,
        "insight_id": channel.insight_id,
        "method_key": channel.method_key,
        "metric_key": channel.metric_key,
        "stage": channel.stage,
        "operator": channel.operator,
        "priority": channel.priority,
        "enabled": channel.enabled,
        "meta": dict(channel.meta or {}),
        "created_at": channel.created_at,
        "updated_at": channel.updated_at,
    }


def point_to_dict(point: InsightEffectPoint) -> dict[str, Any]:
    return {
        "id": point.id,
        "channel_id": point.channel_id,
        "effect_date": point.effect_date.isoformat(),
        "effect_value": point.effect_value,
        "created_at": point.created_at,
        "updated_at": point.updated_at,
    }


def exclusion_to_dict(exclusion: InsightTargetExclusion) -> dict[str, Any]:
    return {
        "id": exclusion.id,
        "insight_id": exclusion.insight_id,
        "symbol": exclusion.symbol,
        "reason": exclusion.reason,
        "created_at": exclusion.created_at,
        "updated_at": exclusion.updated_at,
    }


def target_to_dict(target: InsightMaterializedTarget) -> dict[str, Any]:
    return {
        "id": target.id,
        "insight_id": target.insight_id,
        "symbol": target.symbol,
        "source_scope_type": target.source_scope_type,
        "source_scope_key": target.source_scope_key,
        "materialized_at": target.materialized_at,
    }


# =============================================================================
# INSIGHT FACTS
# =============================================================================


async def list_insight_facts(limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
    """List facts newest first. Returns (items, total)."""
    async with get_business_session() as session:
        result = await session.execute(
            select(InsightFact)
            .order_by(InsightFact.created_at.desc(), InsightFact.id.asc())
            .limit(limit)
            .offset(offset)
        )
        items = [fact_to_dict(fact) for fact in result.scalars()]
        total = await session.scalar(select(func.count()).select_from(InsightFact))
        return items, int(total or 0)


async def create_insight_fact(content: str) -> dict[str, Any]:
    now = utc_now()
    async with get_business_session() as session:
        fact = InsightFact(id=str(uuid.uuid4()), content=content, created_at=now, updated_at=now)
        session.add(fact)
        await session.commit()
        return fact_to_dict(fact)


async def delete_insight_fact(fact_id: str) -> bool:
    async with get_business_session() as session:
        result = await session.execute(delete(InsightFact).where(InsightFact.id == fact_id))
        await session.commit()
        return result.rowcount > 0


# =============================================================================
# INSIGHTS
# =============================================================================


async def list_insights(
    query: str | None,
    status: str,
    limit: int,
    offset: int,
) -> tuple[list[dict[str, Any]], int]:
    """List insights ordered by last update.

    Args:
        query: Optional case-insensitive substring of title or thesis
        status: ``all``, ``deleted`` (soft-deleted only) or a live status
        limit: Page size
        offset: Rows to skip

    Returns:
        Tuple of (insights, total matching count)
    """
    conditions: list[Any] = []
    if status == InsightStatus.DELETED.value:
        conditions.append(Insight.deleted_at.is_not(None))
    else:
        conditions.append(Insight.deleted_at.is_(None))
        if status != "all":
            conditions.append(Insight.status == status)

    if query:
        pattern = f"%{escape_like(query.lower())}%"
        conditions.append(
            or_(
                func.lower(Insight.title).like(pattern, escape="\\"),
                func.lower(Insight.thesis).like(pattern, escape="\\"),
            )
        )

    async with get_business_session() as session:
        result = await session.execute(
            select(Insight)
            .where(*conditions)
            .order_by(Insight.updated_at.desc(), Insight.id.asc())
            .limit(limit)
            .offset(offset)
        )
        items = [insight_to_dict(insight) for insight in result.scalars()]
        total = await session.scalar(select(func.count()).select_from(Insight).where(*conditions))
        return items, int(total or 0)


async def get_insight(insight_id: str) -> dict[str, Any] | None:
    """Get one insight (soft-deleted insights included)."""
    async with get_business_session() as session:
        insight = await session.get(Insight, insight_id)
        return insight_to_dict(insight) if insight else None


async def get_insight_detail(insight_id: str) -> dict[str, Any] | None:
    """Get an insight with its rules, channels, points, exclusions and targets.

    Args:
        insight_id: Insight ID

    Returns:
        Detail dict or None if not found
    """
    async with get_business_session() as session:
        insight = await session.get(Insight, insight_id)
        if insight is None:
            return None

        rules = await session.execute(
            select(InsightScopeRule)
            .where(InsightScopeRule.insight_id == insight_id)
            .order_by(InsightScopeRule.created_at.asc())
        )
        channels = await session.execute(
            select(InsightEffectChannel)
            .where(InsightEffectChannel.insight_id == insight_id)
            .order_by(InsightEffectChannel.created_at.asc())
        )
        points = await session.execute(
            select(InsightEffectPoint)
            .join(InsightEffectChannel, InsightEffectChannel.id == InsightEffectPoint.channel_id)
            .where(InsightEffectChannel.insight_id == insight_id)
            .order_by(InsightEffectPoint.effect_date.asc(), InsightEffectPoint.created_at.asc())
        )
        exclusions = await session.execute(
            select(InsightTargetExclusion)
            .where(InsightTargetExclusion.insight_id == insight_id)
            .order_by(InsightTargetExclusion.symbol.asc())
        )
        targets = await session.execute(
            select(InsightMaterializedTarget)
            .where(InsightMaterializedTarget.insight_id == insight_id)
            .order_by(
                InsightMaterializedTarget.symbol.asc(),
                InsightMaterializedTarget.source_scope_type.asc(),
                InsightMaterializedTarget.source_scope_key.asc(),
            )
        )

        return {
            **insight_to_dict(insight),
            "scope_rules": [scope_rule_to_dict(r) for r in rules.scalars()],
            "effect_channels": [channel_to_dict(c) for c in channels.scalars()],
            "effect_points": [point_to_dict(p) for p in points.scalars()],
            "target_exclusions": [exclusion_to_dict(e) for e in exclusions.scalars()],
            "materialized_targets": [target_to_dict(t) for t in targets.scalars()],
        }


async def create_insight(
    title: str,
    thesis: str,
    status: str,
    valid_from: str | None,
    valid_to: str | None,
    tags: list[str],
    meta: dict[str, Any],
) -> str:
    """Insert an insight and return its new ID."""
    now = utc_now()
    insight = Insight(
        id=str(uuid.uuid4()),
        title=title,
        thesis=thesis,
        status=status,
        valid_from=_to_date(valid_from),
        valid_to=_to_date(valid_to),
        tags=tags,
        meta=meta,
        created_at=now,
        updated_at=now,
        deleted_at=now if status == InsightStatus.DELETED.value else None,
    )
    async with get_business_session() as session:
        session.add(insight)
        await session.commit()
    return insight.id


async def update_insight(insight_id: str, fields: dict[str, Any]) -> bool:
    """Apply a partial update. Returns False if the insight does not exist.

    Setting status to ``deleted`` stamps ``deleted_at`` once and keeps it;
    any other status clears it.
    """
    now = utc_now()
    async with get_business_session() as session:
        insight = await session.get(Insight, insight_id)
        if insight is None:
            return False

        for key in ("title", "thesis", "status", "tags", "meta"):
            if key in fields:
                setattr(insight, key, fields[key])
        for key in ("valid_from", "valid_to"):
            if key in fields:
                setattr(insight, key, _to_date(fields[key]))

        if insight.status == InsightStatus.DELETED.value:
            insight.deleted_at = insight.deleted_at or now
        else:
            insight.deleted_at = None
        insight.updated_at = now
        await session.commit()
        return True


async def soft_delete_insight(insight_id: str) -> bool:
    now = utc_now()
    async with get_business_session() as session:
        insight = await session.get(Insight, insight_id)
        if insight is None:
            return False
        insight.status = InsightStatus.DELETED.value
        insight.deleted_at = now
        insight.updated_at = now
        await session.commit()
        return True


async def insight_exists(insight_id: str) -> bool:
    async with get_business_session() as session:
        return await session.get(Insight, insight_id) is not None


async def list_refreshable_insight_ids() -> list[str]:
    """IDs of every insight that is not soft-deleted, most recently updated first."""
    async with get_business_session() as session:
        result = await session.execute(
            select(Insight.id)
            .where(Insight.deleted_at.is_(None))
            .order_by(Insight.updated_at.desc())
        )
        return list(result.scalars().all())


# =============================================================================
# SEARCH
# =============================================================================


def _make_snippet(text: str, query: str) -> str | None:
    """Excerpt of ``text`` around the first case-insensitive hit of ``query``."""
    if not text:
        return None
    pos = text.lower().find(query.lower())
    if pos < 0:
        return text[: SNIPPET_RADIUS * 2] + ("…" if len(text) > SNIPPET_RADIUS * 2 else "")
    start = max(0, pos - SNIPPET_RADIUS)
    end = min(len(text), pos + len(query) + SNIPPET_RADIUS)
    return (
        ("…" if start > 0 else "")
        + text[start:pos]
        + "<mark>" + text[pos:pos + len(query)] + "</mark>"
        + text[pos + len(query):end]
        + ("…" if end < len(text) else "")
    )


async def search_insights(
    query: str, limit: int, offset: int
) -> tuple[list[dict[str, Any]], int]:
    """Ranked search over title, tags and thesis of live insights.

    Title hits rank first (score 0), then tag hits (1), then thesis hits (2);
    ties are broken by most recent update.

    Returns:
        Tuple of ([{"insight", "snippet", "score"}], total)
    """
    pattern = f"%{escape_like(query.lower())}%"
    title_hit = func.lower(Insight.title).like(pattern, escape="\\")
    tags_hit = func.lower(cast(Insight.tags, Text)).like(pattern, escape="\\")
    thesis_hit = func.lower(Insight.thesis).like(pattern, escape="\\")
    score = case((title_hit, 0), (tags_hit, 1), else_=2)
    conditions = (Insight.deleted_at.is_(None), or_(title_hit, tags_hit, thesis_hit))

    async with get_business_session() as session:
        result = await session.execute(
            select(Insight, score.label("score"))
            .where(*conditions)
            .order_by(score.asc(), Insight.updated_at.desc(), Insight.id.asc())
            .limit(limit)
            .offset(offset)
        )
        items = [
            {
                "insight": insight_to_dict(insight),
                "snippet": _make_snippet(insight.thesis, query),
                "score": float(rank),
            }
            for insight, rank in result.all()
        ]
        total = await session.scalar(select(func.count()).select_from(Insight).where(*conditions))
        return items, int(total or 0)
