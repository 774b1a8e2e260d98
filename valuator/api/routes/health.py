"""Store reachability probe."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter
from sqlalchemy import text

from valuator.core.config import settings
from valuator.core.logging import get_logger
from valuator.database.connection import get_business_session, get_market_session
from valuator.schemas.common import HealthResponse


router = APIRouter(prefix="/health", tags=["Health"])

logger = get_logger("health")

STORES = {
    "business_db": get_business_session,
    "market_db": get_market_session,
}


async def _ping(name: str) -> bool:
    try:
        async with STORES[name]() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"{name} unreachable: {e}", extra={"store": name})
        return False
    return True


@router.get(
    "",
    response_model=HealthResponse,
    summary="Store reachability",
    description="Ping the business and market stores.",
)
async def health_check() -> HealthResponse:
    """``degraded``: authoring works but previews cannot price symbols."""
    results = await asyncio.gather(*(_ping(name) for name in STORES))
    checks = dict(zip(STORES, results))

    if all(results):
        status = "healthy"
    elif checks["business_db"]:
        status = "degraded"
    else:
        status = "unhealthy"
    return HealthResponse(status=status, version=settings.app_version, checks=checks)
