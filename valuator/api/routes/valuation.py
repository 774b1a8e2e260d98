"""Valuation preview and snapshot routes."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Query

from valuator.schemas.valuation import (
    ValuationPreviewRequest,
    ValuationPreviewResponse,
    ValuationSnapshotResponse,
)
from valuator.services import valuation_preview


router = APIRouter(prefix="/valuation", tags=["Valuation"])


@router.post("/preview", response_model=ValuationPreviewResponse)
async def preview(payload: ValuationPreviewRequest) -> ValuationPreviewResponse:
    """Compute base and insight-adjusted valuation for a symbol.

    A missing method or missing prices is reported in-band with
    ``not_applicable`` and a ``reason``, not as an HTTP error.
    """
    result = await valuation_preview.preview_valuation(
        payload.symbol, as_of_date=payload.as_of_date, method_key=payload.method_key
    )
    return ValuationPreviewResponse(**result.to_dict())


@router.get("/snapshots/{symbol}", response_model=List[ValuationSnapshotResponse])
async def list_snapshots(
    symbol: str,
    limit: Optional[int] = Query(None, description="Max rows (default 20, capped by LIST_LIMIT_MAX)"),
) -> List[ValuationSnapshotResponse]:
    """Stored snapshots for a symbol, newest as-of date first."""
    rows = await valuation_preview.list_valuation_snapshots(symbol, limit)
    return [ValuationSnapshotResponse(**row) for row in rows]


@router.get("/snapshots/{symbol}/{as_of_date}/{method_key}", response_model=ValuationSnapshotResponse)
async def get_snapshot(symbol: str, as_of_date: str, method_key: str) -> ValuationSnapshotResponse:
    return ValuationSnapshotResponse(
        **await valuation_preview.get_valuation_snapshot(symbol, as_of_date, method_key)
    )
