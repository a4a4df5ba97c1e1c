# partner_api/middleware/rate_limiter.py
from __future__ import annotations

import time
from typing import Optional, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from partner_api.core.config import settings
from partner_api.core.exceptions import RateLimitError, ServiceUnavailableError
from partner_api.core.logging import get_structlog_logger
from partner_api.services.redis import get_redis_client

logger = get_structlog_logger(__name__)


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting in Redis, keyed by employee or client IP."""

    def __init__(self, app, requests: Optional[int] = None, period: Optional[int] = None):
        super().__init__(app)
        self.redis = None
        self.rate_limit_requests = requests or settings.rate_limit_requests
        self.rate_limit_period = period or settings.rate_limit_period

    async def dispatch(self, request: Request, call_next):
        if request.url.path.endswith(("/health", "/metrics")):
            return await call_next(request)

        client_id = self._get_client_id(request)
        allowed, remaining, reset_time = await self._check_rate_limit(client_id)

        if not allowed:
            retry_after = max(0, reset_time - int(time.time()))
            logger.warning(
                "rate_limit.exceeded",
                client_id=client_id,
                path=request.url.path,
                method=request.method,
                retry_after=retry_after,
            )
            error = RateLimitError(
                retry_after=retry_after,
                details={"limit": self.rate_limit_requests, "period": self.rate_limit_period},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error.to_dict(),
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.rate_limit_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)
        return response

    def _get_client_id(self, request: Request) -> str:
        employee = getattr(request.state, "employee", None)
        if employee is not None:
            return f"employee:{employee.employee_id}"

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return f"ip:{forwarded_for.split(',')[0].strip()}"
        return f"ip:{request.client.host if request.client else 'unknown'}"

    async def _check_rate_limit(self, client_id: str) -> Tuple[bool, int, int]:
        window = int(time.time() // self.rate_limit_period)
        reset_time = (window + 1) * self.rate_limit_period
        key = f"ratelimit:{client_id}:{window}"

        try:
            if self.redis is None:
                self.redis = await get_redis_client()

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.rate_limit_period)
                results = await pipe.execute()
            current_count = int(results[0])

        except (RedisError, ServiceUnavailableError) as e:
            # Fail open when Redis is unavailable
            logger.error("rate_limit.error", error=str(e), client_id=client_id[:50])
            return True, self.rate_limit_requests, reset_time

        remaining = max(0, self.rate_limit_requests - current_count)
        return current_count <= self.rate_limit_requests, remaining, reset_time
