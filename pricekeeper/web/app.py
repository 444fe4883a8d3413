"""FastAPI application for pricekeeper."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from pricekeeper import __version__
from pricekeeper.config import get_config
from pricekeeper.core.logging import configure_logging
from pricekeeper.db.connection import close_db, init_db
from pricekeeper.errors import PricingError
from pricekeeper.web.dependencies import get_sweeper, reset_dependencies
from pricekeeper.web.routes import health, history, prices, scheduled, settings

logger = structlog.get_logger()


REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log line and echo it back to the caller."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", duration_ms=_elapsed_ms(started))
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


async def pricing_error_handler(request: Request, exc: PricingError) -> JSONResponse:
    """Map the pricing error taxonomy onto HTTP status codes."""
    if exc.status_code >= 500:
        logger.error("pricing_error", code=exc.code, error=exc.message, path=request.url.path)
    else:
        logger.info("pricing_error", code=exc.code, error=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    await init_db()
    sweeper = get_sweeper()
    if config.sweeper.enabled:
        sweeper.start()
    try:
        yield
    finally:
        await reset_dependencies()
        await close_db()


def create_app(with_lifespan: bool = True, metrics: bool = True) -> FastAPI:
    """Build the application.

    Tests pass with_lifespan=False to skip DB and sweeper startup, and
    metrics=False to avoid re-registering Prometheus collectors per app.
    """
    app = FastAPI(
        title="pricekeeper",
        description="Model price catalog with scheduled changes and audit history",
        version=__version__,
        lifespan=lifespan if with_lifespan else None,
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(PricingError, pricing_error_handler)

    app.include_router(health.router)
    app.include_router(prices.router)
    app.include_router(settings.router)
    app.include_router(scheduled.router)
    app.include_router(history.router)

    if metrics:
        Instrumentator().instrument(app).expose(app)
    return app


def build_app() -> FastAPI:
    """uvicorn factory: configure logging from the environment, then build."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    return create_app()
