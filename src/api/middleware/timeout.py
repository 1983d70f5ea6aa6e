"""
Request timeout middleware.

Bounds each request with ``asyncio.timeout`` and answers 504 when it
expires. Processing endpoints are exempt: a pipeline run has its own
deadline (``scan_timeout_seconds``) and reports partial results instead
of failing the request.
"""

import asyncio

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

EXEMPT_PATHS: tuple[str, ...] = (
    "/health",
    "/scheduled-alerts/process",
    "/scheduled-alerts/cron",
)


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Return 504 for requests that run longer than ``timeout_seconds``."""

    def __init__(
        self,
        app,
        timeout_seconds: float = 30.0,
        exempt_paths: tuple[str, ...] = EXEMPT_PATHS,
    ):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.exempt_paths = exempt_paths

    def _is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if self._is_exempt(request.url.path):
            return await call_next(request)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call_next(request)
        except TimeoutError:
            logger.warning(
                "Request timed out",
                path=request.url.path,
                method=request.method,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={
                    "detail": "Request timed out",
                    "timeout_seconds": self.timeout_seconds,
                },
            )
