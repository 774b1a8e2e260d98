"""Insight authoring: facts, insights, scope rules, effect channels and points.

Every entry point normalizes raw input (strings trimmed, enums checked,
dates validated) before touching storage, so validation failures never
leave partial writes behind.
"""

from __future__ import annotations

from typing import Any

from valuator.core.config import settings
from valuator.core.exceptions import NotFoundError, ValidationError
from valuator.core.logging import get_logger
from valuator.core.validation import (
    clamp_limit,
    clamp_offset,
    normalize_enum,
    normalize_finite_number,
    normalize_optional_date,
    normalize_optional_string,
    normalize_priority,
    normalize_record,
    normalize_required_date,
    normalize_required_string,
    normalize_string_array,
)
from valuator.domain.enums import (
    EffectOperator,
    EffectStage,
    InsightStatus,
    ScopeMode,
    ScopeType,
)
from valuator.repositories import insight_rules_orm as rules_repo
from valuator.repositories import insights_orm as insights_repo


logger = get_logger("services.insight_service")

SEARCH_LIMIT_DEFAULT = 20
SEARCH_LIMIT_MAX = 200


def _check_window(valid_from: str | None, valid_to: str | None) -> None:
    if valid_from and valid_to and valid_from > valid_to:
        raise ValidationError(
            "valid_from must not be after valid_to.",
            details={"valid_from": valid_from, "valid_to": valid_to},
        )


async def _require_insight(insight_id: str) -> None:
    if not await insights_repo.insight_exists(insight_id):
        raise NotFoundError(message=f"Insight not found: {insight_id}")


# =============================================================================
# FACTS
# =============================================================================


async def list_insight_facts(limit: Any = None, offset: Any = None) -> dict[str, Any]:
    page_limit = clamp_limit(limit, settings.list_limit_default, settings.list_limit_max)
    page_offset = clamp_offset(offset)
    items, total = await insights_repo.list_insight_facts(page_limit, page_offset)
    return {"items": items, "total": total, "limit": page_limit, "offset": page_offset}


async def create_insight_fact(content: Any) -> dict[str, Any]:
    return await insights_repo.create_insight_fact(normalize_required_string(content, "content"))


async def remove_insight_fact(fact_id: Any) -> None:
    fact_id = normalize_required_string(fact_id, "fact_id")
    if not await insights_repo.delete_insight_fact(fact_id):
        raise NotFoundError(message=f"Fact not found: {fact_id}")


# =============================================================================
# INSIGHTS
# =============================================================================


async def list_insights(
    query: Any = None,
    status: Any = None,
    limit: Any = None,
    offset: Any = None,
) -> dict[str, Any]:
    """Page through insights.

    Args:
        query: Optional substring of title or thesis
        status: ``all`` (default, live only), ``deleted`` or a live status
        limit: Page size (default 100, max 500)
        offset: Rows to skip
    """
    status_filter = normalize_optional_string(status) or "all"
    if status_filter != "all":
        status_filter = normalize_enum(InsightStatus, status_filter, "status").value
    page_limit = clamp_limit(limit, settings.list_limit_default, settings.list_limit_max)
    page_offset = clamp_offset(offset)
    items, total = await insights_repo.list_insights(
        normalize_optional_string(query), status_filter, page_limit, page_offset
    )
    return {"items": items, "total": total, "limit": page_limit, "offset": page_offset}


async def get_insight_detail(insight_id: Any) -> dict[str, Any]:
    insight_id = normalize_required_string(insight_id, "insight_id")
    detail = await insights_repo.get_insight_detail(insight_id)
    if detail is None:
        raise NotFoundError(message=f"Insight not found: {insight_id}")
    return detail


async def create_insight(
    title: Any,
    thesis: Any = None,
    status: Any = None,
    valid_from: Any = None,
    valid_to: Any = None,
    tags: Any = None,
    meta: Any = None,
) -> dict[str, Any]:
    """Create an insight (status defaults to draft) and return its detail."""
    title = normalize_required_string(title, "title")
    insight_status = normalize_enum(InsightStatus, status or InsightStatus.DRAFT, "status")
    start = normalize_optional_date(valid_from, "valid_from")
    end = normalize_optional_date(valid_to, "valid_to")
    _check_window(start, end)

    insight_id = await insights_repo.create_insight(
        title=title,
        thesis=normalize_optional_string(thesis) or "",
        status=insight_status.value,
        valid_from=start,
        valid_to=end,
        tags=normalize_string_array(tags),
        meta=normalize_record(meta),
    )
    logger.info(f"Created insight {insight_id}", extra={"insight_id": insight_id})
    return await get_insight_detail(insight_id)


async def update_insight(insight_id: Any, **changes: Any) -> dict[str, Any]:
    """Apply a partial update; only keys present in ``changes`` are touched.

    Accepted keys: title, thesis, status, valid_from, valid_to, tags, meta.
    """
    insight_id = normalize_required_string(insight_id, "insight_id")
    current = await insights_repo.get_insight(insight_id)
    if current is None:
        raise NotFoundError(message=f"Insight not found: {insight_id}")

    fields: dict[str, Any] = {}
    if "title" in changes:
        fields["title"] = normalize_required_string(changes["title"], "title")
    if "thesis" in changes:
        fields["thesis"] = normalize_optional_string(changes["thesis"]) or ""
    if "status" in changes:
        fields["status"] = normalize_enum(InsightStatus, changes["status"], "status").value
    if "valid_from" in changes:
        fields["valid_from"] = normalize_optional_date(changes["valid_from"], "valid_from")
    if "valid_to" in changes:
        fields["valid_to"] = normalize_optional_date(changes["valid_to"], "valid_to")
    if "tags" in changes:
        fields["tags"] = normalize_string_array(changes["tags"])
    if "meta" in changes:
        fields["meta"] = normalize_record(changes["meta"])

    _check_window(
        fields.get("valid_from", current["valid_from"]),
        fields.get("valid_to", current["valid_to"]),
    )
    await insights_repo.update_insight(insight_id, fields)
    return await get_insight_detail(insight_id)


async def remove_insight(insight_id: Any) -> None:
    """Soft-delete an insight (status ``deleted`` with a deletion timestamp)."""
    insight_id = normalize_required_string(insight_id, "insight_id")
    if not await insights_repo.soft_delete_insight(insight_id):
        raise NotFoundError(message=f"Insight not found: {insight_id}")
    logger.info(f"Soft-deleted insight {insight_id}", extra={"insight_id": insight_id})


async def search_insights(query: Any, limit: Any = None, offset: Any = None) -> dict[str, Any]:
    """Ranked search over live insights: title hits, then tags, then thesis."""
    text = normalize_required_string(query, "query")
    page_limit = clamp_limit(limit, SEARCH_LIMIT_DEFAULT, SEARCH_LIMIT_MAX)
    page_offset = clamp_offset(offset)
    items, total = await insights_repo.search_insights(text, page_limit, page_offset)
    return {"items": items, "total": total, "limit": page_limit, "offset": page_offset}


# =============================================================================
# SCOPE RULES
# =============================================================================


async def upsert_scope_rule(
    insight_id: Any,
    scope_type: Any,
    scope_key: Any,
    mode: Any = ScopeMode.INCLUDE,
    enabled: Any = True,
    rule_id: Any = None,
) -> dict[str, Any]:
    insight_id = normalize_required_string(insight_id, "insight_id")
    rule_type = normalize_enum(ScopeType, scope_type, "scope_type")
    key = normalize_required_string(scope_key, "scope_key")
    rule_mode = normalize_enum(ScopeMode, mode, "mode")
    await _require_insight(insight_id)
    return await rules_repo.upsert_scope_rule(
        insight_id,
        rule_type.value,
        key,
        rule_mode.value,
        True if enabled is None else bool(enabled),
        rule_id=normalize_optional_string(rule_id),
    )


async def remove_scope_rule(rule_id: Any) -> None:
    rule_id = normalize_required_string(rule_id, "rule_id")
    if not await rules_repo.delete_scope_rule(rule_id):
        raise NotFoundError(message=f"Scope rule not found: {rule_id}")


# =============================================================================
# EFFECT CHANNELS & POINTS
# =============================================================================


async def upsert_effect_channel(
    insight_id: Any,
    method_key: Any,
    metric_key: Any,
    stage: Any,
    operator: Any,
    priority: Any = None,
    enabled: Any = True,
    meta: Any = None,
    channel_id: Any = None,
) -> dict[str, Any]:
    """Create or rewrite an effect channel.

    ``method_key`` may be ``*`` to target every valuation method.
    """
    insight_id = normalize_required_string(insight_id, "insight_id")
    method = normalize_required_string(method_key, "method_key")
    metric = normalize_required_string(metric_key, "metric_key")
    effect_stage = normalize_enum(EffectStage, stage, "stage")
    effect_operator = normalize_enum(EffectOperator, operator, "operator")
    channel_priority = normalize_priority(priority)
    await _require_insight(insight_id)
    return await rules_repo.upsert_effect_channel(
        insight_id,
        method,
        metric,
        effect_stage.value,
        effect_operator.value,
        channel_priority,
        True if enabled is None else bool(enabled),
        normalize_record(meta),
        channel_id=normalize_optional_string(channel_id),
    )


async def remove_effect_channel(channel_id: Any) -> None:
    channel_id = normalize_required_string(channel_id, "channel_id")
    if not await rules_repo.delete_effect_channel(channel_id):
        raise NotFoundError(message=f"Effect channel not found: {channel_id}")


async def upsert_effect_point(
    channel_id: Any,
    effect_date: Any,
    effect_value: Any,
    point_id: Any = None,
) -> dict[str, Any]:
    channel_id = normalize_required_string(channel_id, "channel_id")
    day = normalize_required_date(effect_date, "effect_date")
    value = normalize_finite_number(effect_value, "effect_value")
    if await rules_repo.get_effect_channel(channel_id) is None:
        raise NotFoundError(message=f"Effect channel not found: {channel_id}")
    return await rules_repo.upsert_effect_point(
        channel_id, day, value, point_id=normalize_optional_string(point_id)
    )


async def remove_effect_point(point_id: Any) -> None:
    point_id = normalize_required_string(point_id, "point_id")
    if not await rules_repo.delete_effect_point(point_id):
        raise NotFoundError(message=f"Effect point not found: {point_id}")
