"""API application factory."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from valuator.core.config import settings
from valuator.core.exceptions import register_exception_handlers
from valuator.core.logging import get_logger, request_id_var
from valuator.database.connection import close_databases, init_databases
from valuator.schemas.common import ErrorResponse
from valuator.services.valuation_catalog import seed_builtin_methods

from .routes import health, insights, valuation, valuation_methods


logger = get_logger("api")

REQUEST_ID_HEADER = "X-Request-ID"


async def startup_resources() -> None:
    """Initialize both store engines and seed the built-in method catalog."""
    await init_databases()
    if settings.seed_builtin_methods:
        await seed_builtin_methods()


async def shutdown_resources() -> None:
    await close_databases()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Used when the API app is served on its own, without the root app."""
    await startup_resources()
    yield
    await shutdown_resources()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate or mint ``X-Request-ID`` and expose it to log records."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access line per request; health probes only at DEBUG."""

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        path = request.url.path
        if response.status_code >= 500:
            level = logging.WARNING
        elif path.endswith("/health"):
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(
            level,
            f"{request.method} {path} -> {response.status_code} ({elapsed_ms}ms)",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response


OPENAPI_TAGS = [
    {"name": "Health", "description": "Reachability of the business and market stores"},
    {"name": "Insights", "description": "Facts, insights, scope rules, effect channels and targets"},
    {"name": "Valuation Methods", "description": "Built-in and custom methods with versioned manifests"},
    {"name": "Valuation", "description": "Symbol previews and stored snapshots"},
]

ROUTERS = (health.router, insights.router, valuation_methods.router, valuation.router)

_ERROR_RESPONSES = {
    status: {"model": ErrorResponse, "description": description}
    for status, description in (
        (404, "Unknown insight, method, version or snapshot"),
        (409, "Duplicate key or invariant violation"),
        (422, "Rejected input"),
        (500, "Unexpected server error"),
    )
}


def create_api_app() -> FastAPI:
    """Build the API application: middleware, error handlers and routers."""
    docs_enabled = settings.debug
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Author insights, scope them to instruments and preview "
            "insight-adjusted valuations per method."
        ),
        root_path=settings.root_path,
        openapi_tags=OPENAPI_TAGS,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
        responses=_ERROR_RESPONSES,
    )

    # Last added runs first: request id is set before the access line is logged
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
        max_age=600,
    )

    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    return app
