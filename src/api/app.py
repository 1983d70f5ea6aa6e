"""
FastAPI application factory for the alert scheduler.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import cleanup_dependencies
from src.api.middleware.timeout import TimeoutMiddleware
from src.api.routes import health, scheduled_alerts
from src.config.settings import Settings, get_settings
from src.scheduled_alerts.exceptions import ScheduledAlertError

logger = structlog.get_logger(__name__)

API_DESCRIPTION = """
Time-deferred alerts: author scheduled alerts, list the ones that are due,
and trigger the scan/claim/fanout pipeline by hand or from an external cron.

Every route except `/health` requires the `X-API-KEY` header.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health checks"},
    {"name": "scheduled-alerts", "description": "Scheduled alert processing and authoring"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Alert scheduler API starting up")
    yield
    logger.info("Alert scheduler API shutting down")
    await cleanup_dependencies()


async def _log_requests(request: Request, call_next):
    """Bind a request id for correlation and log one line per request."""
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or uuid.uuid4().hex
    )
    structlog.contextvars.bind_contextvars(request_id=request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
    finally:
        structlog.contextvars.unbind_contextvars("request_id")


async def _scheduled_alert_error(request: Request, exc: ScheduledAlertError):
    logger.error("Scheduled alert error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc)},
    )


async def _unhandled_error(request: Request, exc: Exception):
    logger.error("Unhandled exception", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_type": "internal"},
    )


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    # Starlette runs the last added middleware first, so the timeout wraps
    # request logging.
    app.middleware("http")(_log_requests)

    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )


def create_app() -> FastAPI:
    """Build the API: middleware, error handlers and the two routers."""
    settings = get_settings()

    app = FastAPI(
        title="Alert Scheduler API",
        description=API_DESCRIPTION,
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    _install_middleware(app, settings)
    app.add_exception_handler(ScheduledAlertError, _scheduled_alert_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(health.router, tags=["health"])
    app.include_router(scheduled_alerts.router, tags=["scheduled-alerts"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "Alert Scheduler API", "version": "0.1.0", "docs": "/docs"}

    return app
