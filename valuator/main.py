"""Root ASGI application: logging setup, store lifecycle, API mounted at /api."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from valuator.api.app import ROUTERS, create_api_app, shutdown_resources, startup_resources
from valuator.core.config import settings
from valuator.core.logging import get_logger, setup_logging


logger = get_logger("main")

API_PREFIX = "/api"


def _redacted(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable url>"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})",
        extra={
            "business_store": _redacted(settings.business_database_url),
            "market_store": _redacted(settings.market_database_url),
            "seed_builtin_methods": settings.seed_builtin_methods,
        },
    )

    await startup_resources()
    yield

    await shutdown_resources()
    logger.info("Stores closed, shutdown complete")


def create_app() -> FastAPI:
    """Root app; the API sub-application keeps its own docs and middleware."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.mount(API_PREFIX, create_api_app())

    @app.get("/", include_in_schema=False)
    async def index():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": f"{API_PREFIX}/docs" if settings.debug else None,
            "resources": sorted(f"{API_PREFIX}{router.prefix}" for router in ROUTERS),
        }

    return app


app = create_app()
