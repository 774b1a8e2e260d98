"""Valuation method catalog, preview and snapshot schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from valuator.core.validation import METHOD_KEY_RE
from valuator.domain.enums import FormulaId, MethodStatus

from .common import PaginatedResponse


METHOD_KEY_PATTERN = METHOD_KEY_RE.pattern


# =============================================================================
# METHODS
# =============================================================================


class AssetScope(BaseModel):
    kinds: List[str] = Field(default_factory=list)
    asset_classes: List[str] = Field(default_factory=list)
    markets: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)


class ValuationMethodResponse(BaseModel):
    id: str
    method_key: str
    name: str
    description: Optional[str] = None
    is_builtin: bool
    status: str
    asset_scope: AssetScope
    active_version_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class ValuationMethodVersionResponse(BaseModel):
    id: str
    method_id: str
    version: int
    effective_from: Optional[str] = None
    effective_to: Optional[str] = None
    graph: List[Dict[str, Any]] = Field(default_factory=list)
    param_schema: Dict[str, Any] = Field(default_factory=dict)
    metric_schema: Dict[str, Any] = Field(default_factory=dict)
    formula_manifest: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class ValuationMethodListResponse(PaginatedResponse):
    items: List[ValuationMethodResponse]


class ValuationMethodDetailResponse(BaseModel):
    method: ValuationMethodResponse
    versions: List[ValuationMethodVersionResponse]


class ValuationMethodCreateRequest(BaseModel):
    method_key: str = Field(
        ..., pattern=METHOD_KEY_PATTERN, description="Letters, digits, '.', '_' and '-'"
    )
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    template_method_key: Optional[str] = Field(
        default=None, pattern=METHOD_KEY_PATTERN, description="Method whose preferred version seeds version 1"
    )
    asset_scope: Optional[Dict[str, Any]] = None


class ValuationMethodUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[MethodStatus] = None
    asset_scope: Optional[Dict[str, Any]] = None


class ValuationMethodCloneRequest(BaseModel):
    target_method_key: str = Field(..., pattern=METHOD_KEY_PATTERN)
    name: Optional[str] = None
    description: Optional[str] = None
    asset_scope: Optional[Dict[str, Any]] = None


class ValuationMethodPublishRequest(BaseModel):
    graph: List[Dict[str, Any]]
    param_schema: Dict[str, Any] = Field(default_factory=dict)
    metric_schema: Dict[str, Any] = Field(default_factory=dict)
    formula_id: Optional[FormulaId] = Field(
        default=None, description="Defaults to the formula of the preferred version"
    )
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class ValuationMethodActivateRequest(BaseModel):
    version_id: str


# =============================================================================
# PREVIEW & SNAPSHOTS
# =============================================================================


class AppliedEffectResponse(BaseModel):
    insight_id: str
    insight_title: str
    channel_id: str
    metric_key: str
    stage: str
    operator: str
    priority: int
    value: float
    before_value: Optional[float] = None
    after_value: Optional[float] = None
    scopes: List[str] = Field(default_factory=list)


class ValuationPreviewRequest(BaseModel):
    symbol: str = Field(..., min_length=1, examples=["600519.SH"])
    as_of_date: Optional[date] = Field(default=None, description="Defaults to today (UTC)")
    method_key: Optional[str] = Field(
        default=None, pattern=METHOD_KEY_PATTERN, description="Routed from the instrument profile when omitted"
    )


class ValuationPreviewResponse(BaseModel):
    symbol: str
    as_of_date: str
    method_key: Optional[str] = None
    method_version_id: Optional[str] = None
    base_metrics: Dict[str, Optional[float]] = Field(default_factory=dict)
    adjusted_metrics: Dict[str, Optional[float]] = Field(default_factory=dict)
    base_value: Optional[float] = None
    adjusted_value: Optional[float] = None
    applied_effects: List[AppliedEffectResponse] = Field(default_factory=list)
    not_applicable: bool
    reason: Optional[str] = None
    computed_at: datetime


class ValuationSnapshotResponse(BaseModel):
    id: str
    symbol: str
    as_of_date: str
    method_key: str
    method_version_id: Optional[str] = None
    base_metrics: Dict[str, Optional[float]] = Field(default_factory=dict)
    adjusted_metrics: Dict[str, Optional[float]] = Field(default_factory=dict)
    applied_effects: List[AppliedEffectResponse] = Field(default_factory=list)
    created_at: datetime
    computed_at: datetime
