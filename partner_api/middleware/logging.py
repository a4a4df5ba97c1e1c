# partner_api/middleware/logging.py
from __future__ import annotations

import time
from typing import Dict, Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from partner_api.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

_QUIET_PATHS = ("/health", "/metrics")
_SENSITIVE_HEADERS = ("authorization", "cookie", "set-cookie", "x-api-key", "token", "secret")


def filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Redact credentials before headers reach the log."""
    return {
        key: "[REDACTED]" if any(s in key.lower() for s in _SENSITIVE_HEADERS) else value
        for key, value in headers.items()
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        path = request.url.path
        quiet = path.endswith(_QUIET_PATHS)

        if not quiet:
            logger.info(
                "request.received",
                method=request.method,
                path=path,
                query_params=dict(request.query_params) or None,
                client_ip=request.client.host if request.client else "unknown",
                headers=filter_headers(request.headers),
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                method=request.method,
                path=path,
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                exception_type=type(e).__name__,
                exception_message=str(e),
            )
            raise

        response_time = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}"

        if not quiet:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "response.sent",
                method=request.method,
                path=path,
                status_code=response.status_code,
                response_time_ms=response_time * 1000,
            )

        return response
