"""Insight API routes.

Authoring of insights and their scope rules, effect channels and points,
plus target materialization, exclusions and the insight fact log.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, status

from valuator.schemas.insights import (
    EffectChannelResponse,
    EffectChannelUpsertRequest,
    EffectPointResponse,
    EffectPointUpsertRequest,
    InsightCreateRequest,
    InsightDetailResponse,
    InsightFactCreateRequest,
    InsightFactListResponse,
    InsightFactResponse,
    InsightListResponse,
    InsightSearchResponse,
    InsightUpdateRequest,
    MaterializeRequest,
    MaterializeResponse,
    RefreshAllResponse,
    ScopeRuleResponse,
    ScopeRuleUpsertRequest,
    TargetExclusionRequest,
)
from valuator.services import insight_service, target_materializer


router = APIRouter(prefix="/insights", tags=["Insights"])


# =============================================================================
# FACTS
# =============================================================================


@router.get("/facts", response_model=InsightFactListResponse)
async def list_facts(
    limit: Optional[int] = Query(None, description="Page size (defaults to LIST_LIMIT_DEFAULT, capped by LIST_LIMIT_MAX)"),
    offset: Optional[int] = Query(None, ge=0),
) -> InsightFactListResponse:
    return InsightFactListResponse(**await insight_service.list_insight_facts(limit, offset))


@router.post("/facts", response_model=InsightFactResponse, status_code=status.HTTP_201_CREATED)
async def create_fact(payload: InsightFactCreateRequest) -> InsightFactResponse:
    return InsightFactResponse(**await insight_service.create_insight_fact(payload.content))


@router.delete("/facts/{fact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_fact(fact_id: str) -> None:
    await insight_service.remove_insight_fact(fact_id)


# =============================================================================
# INSIGHTS
# =============================================================================


@router.get("", response_model=InsightListResponse)
async def list_insights(
    query: Optional[str] = Query(None, description="Substring of title or thesis"),
    status_filter: Optional[str] = Query(
        None, alias="status", description="all, deleted, draft, active or archived"
    ),
    limit: Optional[int] = Query(None, description="Page size (defaults to LIST_LIMIT_DEFAULT, capped by LIST_LIMIT_MAX)"),
    offset: Optional[int] = Query(None, ge=0),
) -> InsightListResponse:
    """List insights, most recently updated first."""
    return InsightListResponse(
        **await insight_service.list_insights(query, status_filter, limit, offset)
    )


@router.get("/search", response_model=InsightSearchResponse)
async def search_insights(
    q: str = Query(..., min_length=1, description="Search text"),
    limit: Optional[int] = Query(None, description="Page size (default 20, max 200)"),
    offset: Optional[int] = Query(None, ge=0),
) -> InsightSearchResponse:
    """Ranked search: title matches first, then tags, then thesis."""
    return InsightSearchResponse(**await insight_service.search_insights(q, limit, offset))


@router.post("/refresh", response_model=RefreshAllResponse)
async def refresh_all() -> RefreshAllResponse:
    """Rematerialize every insight that is not soft-deleted."""
    results = await target_materializer.refresh_all_materializations()
    return RefreshAllResponse(
        refreshed=len(results),
        results=[MaterializeResponse(**r.to_dict()) for r in results],
    )


@router.post("", response_model=InsightDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_insight(payload: InsightCreateRequest) -> InsightDetailResponse:
    detail = await insight_service.create_insight(**payload.model_dump())
    return InsightDetailResponse(**detail)


@router.get("/{insight_id}", response_model=InsightDetailResponse)
async def get_insight(insight_id: str) -> InsightDetailResponse:
    return InsightDetailResponse(**await insight_service.get_insight_detail(insight_id))


@router.patch("/{insight_id}", response_model=InsightDetailResponse)
async def update_insight(insight_id: str, payload: InsightUpdateRequest) -> InsightDetailResponse:
    """Update only the fields present in the request body."""
    detail = await insight_service.update_insight(
        insight_id, **payload.model_dump(exclude_unset=True)
    )
    return InsightDetailResponse(**detail)


@router.delete("/{insight_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_insight(insight_id: str) -> None:
    """Soft-delete an insight."""
    await insight_service.remove_insight(insight_id)


# =============================================================================
# SCOPE RULES
# =============================================================================


@router.put("/{insight_id}/scope-rules", response_model=ScopeRuleResponse)
async def upsert_scope_rule(
    insight_id: str, payload: ScopeRuleUpsertRequest
) -> ScopeRuleResponse:
    rule = await insight_service.upsert_scope_rule(
        insight_id,
        payload.scope_type,
        payload.scope_key,
        mode=payload.mode,
        enabled=payload.enabled,
        rule_id=payload.id,
    )
    return ScopeRuleResponse(**rule)


@router.delete("/scope-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scope_rule(rule_id: str) -> None:
    await insight_service.remove_scope_rule(rule_id)


# =============================================================================
# EFFECT CHANNELS & POINTS
# =============================================================================


@router.put("/{insight_id}/channels", response_model=EffectChannelResponse)
async def upsert_channel(
    insight_id: str, payload: EffectChannelUpsertRequest
) -> EffectChannelResponse:
    channel = await insight_service.upsert_effect_channel(
        insight_id,
        payload.method_key,
        payload.metric_key,
        payload.stage,
        payload.operator,
        priority=payload.priority,
        enabled=payload.enabled,
        meta=payload.meta,
        channel_id=payload.id,
    )
    return EffectChannelResponse(**channel)


@router.delete("/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel(channel_id: str) -> None:
    """Delete a channel and all of its points."""
    await insight_service.remove_effect_channel(channel_id)


@router.put("/channels/{channel_id}/points", response_model=EffectPointResponse)
async def upsert_point(channel_id: str, payload: EffectPointUpsertRequest) -> EffectPointResponse:
    point = await insight_service.upsert_effect_point(
        channel_id, payload.effect_date, payload.effect_value, point_id=payload.id
    )
    return EffectPointResponse(**point)


@router.delete("/points/{point_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_point(point_id: str) -> None:
    await insight_service.remove_effect_point(point_id)


# =============================================================================
# TARGETS
# =============================================================================


@router.post("/{insight_id}/materialize", response_model=MaterializeResponse)
async def materialize_targets(
    insight_id: str, payload: Optional[MaterializeRequest] = None
) -> MaterializeResponse:
    """Resolve scope rules into the insight's target symbols."""
    payload = payload or MaterializeRequest()
    result = await target_materializer.materialize(
        insight_id, persist=payload.persist, preview_limit=payload.preview_limit
    )
    return MaterializeResponse(**result.to_dict())


@router.post("/{insight_id}/exclusions", response_model=MaterializeResponse)
async def exclude_target(insight_id: str, payload: TargetExclusionRequest) -> MaterializeResponse:
    """Exclude a symbol and rematerialize."""
    result = await target_materializer.exclude_target(insight_id, payload.symbol, payload.reason)
    return MaterializeResponse(**result.to_dict())


@router.delete("/{insight_id}/exclusions/{symbol}", response_model=MaterializeResponse)
async def unexclude_target(insight_id: str, symbol: str) -> MaterializeResponse:
    """Lift a manual exclusion and rematerialize."""
    result = await target_materializer.unexclude_target(insight_id, symbol)
    return MaterializeResponse(**result.to_dict())
