"""Valuation method catalog routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, status

from valuator.schemas.valuation import (
    ValuationMethodActivateRequest,
    ValuationMethodCloneRequest,
    ValuationMethodCreateRequest,
    ValuationMethodDetailResponse,
    ValuationMethodListResponse,
    ValuationMethodPublishRequest,
    ValuationMethodUpdateRequest,
)
from valuator.services import valuation_methods


router = APIRouter(prefix="/valuation-methods", tags=["Valuation Methods"])


@router.get("", response_model=ValuationMethodListResponse)
async def list_methods(
    query: Optional[str] = Query(None, description="Substring of key, name or description"),
    include_archived: bool = Query(False),
    include_builtin: bool = Query(True),
    limit: Optional[int] = Query(None, description="Page size (defaults to LIST_LIMIT_DEFAULT, capped by LIST_LIMIT_MAX)"),
    offset: Optional[int] = Query(None, ge=0),
) -> ValuationMethodListResponse:
    """List methods, built-ins first."""
    page = await valuation_methods.list_valuation_methods(
        query, include_archived, include_builtin, limit, offset
    )
    return ValuationMethodListResponse(**page)


@router.post(
    "", response_model=ValuationMethodDetailResponse, status_code=status.HTTP_201_CREATED
)
async def create_method(payload: ValuationMethodCreateRequest) -> ValuationMethodDetailResponse:
    detail = await valuation_methods.create_custom_valuation_method(
        payload.method_key,
        payload.name,
        description=payload.description,
        template_method_key=payload.template_method_key,
        asset_scope=payload.asset_scope,
    )
    return ValuationMethodDetailResponse(**detail)


@router.get("/{method_key}", response_model=ValuationMethodDetailResponse)
async def get_method(method_key: str) -> ValuationMethodDetailResponse:
    return ValuationMethodDetailResponse(
        **await valuation_methods.get_valuation_method_detail(method_key)
    )


@router.patch("/{method_key}", response_model=ValuationMethodDetailResponse)
async def update_method(
    method_key: str, payload: ValuationMethodUpdateRequest
) -> ValuationMethodDetailResponse:
    """Edit a custom method. Built-in methods must be cloned first."""
    detail = await valuation_methods.update_custom_valuation_method(
        method_key, **payload.model_dump(exclude_unset=True)
    )
    return ValuationMethodDetailResponse(**detail)


@router.post(
    "/{method_key}/clone",
    response_model=ValuationMethodDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def clone_method(
    method_key: str, payload: ValuationMethodCloneRequest
) -> ValuationMethodDetailResponse:
    detail = await valuation_methods.clone_builtin_valuation_method(
        method_key,
        payload.target_method_key,
        name=payload.name,
        description=payload.description,
        asset_scope=payload.asset_scope,
    )
    return ValuationMethodDetailResponse(**detail)


@router.post(
    "/{method_key}/versions",
    response_model=ValuationMethodDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def publish_version(
    method_key: str, payload: ValuationMethodPublishRequest
) -> ValuationMethodDetailResponse:
    """Publish the next version of a custom method."""
    detail = await valuation_methods.publish_valuation_method_version(
        method_key, **payload.model_dump()
    )
    return ValuationMethodDetailResponse(**detail)


@router.put("/{method_key}/active-version", response_model=ValuationMethodDetailResponse)
async def activate_version(
    method_key: str, payload: ValuationMethodActivateRequest
) -> ValuationMethodDetailResponse:
    detail = await valuation_methods.set_active_valuation_method_version(
        method_key, payload.version_id
    )
    return ValuationMethodDetailResponse(**detail)
