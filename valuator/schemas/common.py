"""Schemas shared by every router: error body, health, pagination envelope."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every non-2xx response (see ``AppException.to_dict``)."""

    error: str = Field(
        ...,
        description="Machine-readable code",
        examples=["NOT_FOUND", "VALIDATION_ERROR", "CONFLICT", "INVARIANT_VIOLATION"],
    )
    message: str
    status: int
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Offending field, key or version when known"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "INVARIANT_VIOLATION",
                "message": "Built-in valuation methods cannot be edited: builtin.equity.factor",
                "status": 409,
                "details": {"method_key": "builtin.equity.factor"},
            }
        }
    }


class HealthResponse(BaseModel):
    """Store reachability. ``degraded`` means only the market store is down."""

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    checks: Dict[str, bool] = Field(
        default_factory=dict, description="business_db and market_db reachability"
    )


class PaginatedResponse(BaseModel):
    """Envelope fields of list and search responses; subclasses add ``items``."""

    total: int = Field(..., description="Rows matching the filter, ignoring limit/offset")
    limit: int = Field(..., description="Page size after clamping")
    offset: int
