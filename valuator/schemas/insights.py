"""Insight authoring schemas: facts, insights, scope rules, channels, targets."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from valuator.core.validation import PRIORITY_MAX, PRIORITY_MIN
from valuator.domain.enums import EffectOperator, EffectStage, InsightStatus, ScopeMode, ScopeType

from .common import PaginatedResponse


CHANNEL_METHOD_KEY_PATTERN = r"^\s*(\*|[A-Za-z0-9._-]+)\s*$"


# =============================================================================
# FACTS
# =============================================================================


class InsightFactCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Free-form observation text")


class InsightFactResponse(BaseModel):
    id: str
    content: str
    created_at: datetime
    updated_at: datetime


class InsightFactListResponse(PaginatedResponse):
    items: List[InsightFactResponse]


# =============================================================================
# INSIGHTS
# =============================================================================


class InsightCreateRequest(BaseModel):
    """Create an insight. Status defaults to ``draft``."""

    title: str = Field(..., min_length=1)
    thesis: Optional[str] = None
    status: Optional[InsightStatus] = None
    valid_from: Optional[date] = Field(default=None, description="First day the insight applies")
    valid_to: Optional[date] = Field(default=None, description="Last day the insight applies")
    tags: List[str] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)


class InsightUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    title: Optional[str] = Field(default=None, min_length=1)
    thesis: Optional[str] = None
    status: Optional[InsightStatus] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    tags: Optional[List[str]] = None
    meta: Optional[Dict[str, Any]] = None


class InsightResponse(BaseModel):
    id: str
    title: str
    thesis: str
    status: str
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class InsightListResponse(PaginatedResponse):
    items: List[InsightResponse]


class InsightSearchHit(BaseModel):
    insight: InsightResponse
    snippet: Optional[str] = None
    score: float


class InsightSearchResponse(PaginatedResponse):
    items: List[InsightSearchHit]


# =============================================================================
# SCOPE RULES, CHANNELS, POINTS
# =============================================================================


class ScopeRuleUpsertRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Existing rule to rewrite")
    scope_type: ScopeType
    scope_key: str = Field(..., min_length=1, examples=["sector:tech", "600519.SH"])
    mode: ScopeMode = ScopeMode.INCLUDE
    enabled: bool = True


class ScopeRuleResponse(BaseModel):
    id: str
    insight_id: str
    scope_type: str
    scope_key: str
    mode: str
    enabled: bool
    created_at: datetime
    updated_at: datetime


class EffectChannelUpsertRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Existing channel to rewrite")
    method_key: str = Field(
        ...,
        pattern=CHANNEL_METHOD_KEY_PATTERN,
        description="Valuation method key or '*' for every method",
    )
    metric_key: str = Field(..., min_length=1, examples=["factor.momentum.20d"])
    stage: EffectStage
    operator: EffectOperator
    priority: Optional[float] = Field(
        default=None,
        ge=PRIORITY_MIN,
        lt=PRIORITY_MAX + 1,
        allow_inf_nan=False,
        description="Lower applies first (default 100, floored to an integer)",
    )
    enabled: bool = True
    meta: Dict[str, Any] = Field(default_factory=dict)


class EffectChannelResponse(BaseModel):
    id: str
    insight_id: str
    method_key: str
    metric_key: str
    stage: str
    operator: str
    priority: int
    enabled: bool
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class EffectPointUpsertRequest(BaseModel):
    id: Optional[str] = None
    effect_date: date
    effect_value: float = Field(..., allow_inf_nan=False)


class EffectPointResponse(BaseModel):
    id: str
    channel_id: str
    effect_date: str
    effect_value: float
    created_at: datetime
    updated_at: datetime


# =============================================================================
# TARGETS
# =============================================================================


class TargetExclusionResponse(BaseModel):
    id: str
    insight_id: str
    symbol: str
    reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MaterializedTargetResponse(BaseModel):
    id: str
    insight_id: str
    symbol: str
    source_scope_type: str
    source_scope_key: str
    materialized_at: datetime


class TargetExclusionRequest(BaseModel):
    symbol: str = Field(..., min_length=1)
    reason: Optional[str] = None


class MaterializeRequest(BaseModel):
    persist: bool = True
    preview_limit: Optional[int] = Field(default=None, description="1..2000, default 200")


class MaterializeResponse(BaseModel):
    insight_id: str
    total: int
    symbols: List[str]
    truncated: bool
    rules_applied: int
    updated_at: datetime


class RefreshAllResponse(BaseModel):
    refreshed: int
    results: List[MaterializeResponse]


class InsightDetailResponse(InsightResponse):
    """Insight with its rules, channels, points, exclusions and materialized targets."""

    scope_rules: List[ScopeRuleResponse] = Field(default_factory=list)
    effect_channels: List[EffectChannelResponse] = Field(default_factory=list)
    effect_points: List[EffectPointResponse] = Field(default_factory=list)
    target_exclusions: List[TargetExclusionResponse] = Field(default_factory=list)
    materialized_targets: List[MaterializedTargetResponse] = Field(default_factory=list)
