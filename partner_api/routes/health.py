# partner_api/routes/health.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.config import settings
from partner_api.core.logging import get_structlog_logger
from partner_api.db.base import utcnow
from partner_api.db.session import get_session, health_check as database_health_check
from partner_api.services.redis import health_check as redis_health_check

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    timestamp: str
    checks: Dict[str, Dict[str, Any]]


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(session: AsyncSession = Depends(get_session)):
    """Database is critical; Redis only backs rate limiting and degrades the status."""
    checks = {
        "database": await database_health_check(session),
        "redis": await redis_health_check(),
    }

    overall = "healthy"
    if checks["database"].get("status") != "healthy":
        overall = "unhealthy"
    elif checks["redis"].get("status") not in ("healthy", "unavailable"):
        overall = "degraded"

    body = HealthCheckResponse(
        status=overall,
        service="partner_api",
        environment=settings.environment,
        timestamp=utcnow().isoformat(),
        checks=checks,
    )

    if overall != "healthy":
        logger.warning("health.check", status=overall, checks=checks)

    code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == "unhealthy" else status.HTTP_200_OK
    return JSONResponse(status_code=code, content=body.model_dump())


@router.get("/health/live")
async def liveness_probe():
    return {"status": "alive", "timestamp": utcnow().isoformat()}
