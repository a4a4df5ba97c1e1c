# partner_api/middleware/auth.py
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

from partner_api.core.config import settings
from partner_api.core.exceptions import AuthenticationError
from partner_api.core.logging import get_structlog_logger
from partner_api.models.enums import EmployeeRole
from partner_api.schemas.employee import EmployeeContext

logger = get_structlog_logger(__name__)


def default_public_paths(prefix: str) -> List[str]:
    return [
        "/",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
        f"{prefix}/health",
        f"{prefix}/health/.*",
        f"{prefix}/referrals/[^/]+",
    ]


class AuthMiddleware(BaseHTTPMiddleware):
    """Decodes the partner employee bearer token into ``request.state.employee``."""

    def __init__(self, app, public_paths: Optional[List[str]] = None, public_posts: Optional[List[str]] = None):
        super().__init__(app)
        prefix = settings.api_prefix
        self.public_patterns = [re.compile(p) for p in (public_paths or default_public_paths(prefix))]
        # enrollment intake is anonymous
        self.public_post_patterns = [re.compile(p) for p in (public_posts or [f"{prefix}/registrations"])]

    async def dispatch(self, request: Request, call_next):
        request.state.employee = None

        if request.method == "OPTIONS" or self._is_public(request):
            return await call_next(request)

        token = self._extract_token(request)
        if not token:
            logger.warning("auth.missing_token", path=request.url.path, method=request.method)
            return self._reject("missing_token", "Authentication token is required")

        try:
            request.state.employee = TokenManager.decode_employee(token)
        except ExpiredSignatureError:
            logger.warning("auth.expired_token", path=request.url.path)
            return self._reject("expired_token", "Token has expired")
        except (JWTError, AuthenticationError) as e:
            logger.warning("auth.invalid_token", error=str(e), path=request.url.path)
            return self._reject("invalid_token", "Invalid authentication token")

        logger.debug(
            "auth.authenticated",
            employee_id=request.state.employee.employee_id,
            company_id=request.state.employee.company_id,
            role=request.state.employee.role.value,
            path=request.url.path,
        )
        return await call_next(request)

    def _is_public(self, request: Request) -> bool:
        path = request.url.path
        if any(p.fullmatch(path) for p in self.public_patterns):
            return True
        return request.method == "POST" and any(p.fullmatch(path) for p in self.public_post_patterns)

    @staticmethod
    def _extract_token(request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return None
        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return None
        return parts[1]

    @staticmethod
    def _reject(code: str, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"code": code, "message": message, "details": {}},
            headers={"WWW-Authenticate": "Bearer"},
        )


class TokenManager:
    """JWT helpers for partner employee tokens."""

    @staticmethod
    def create_access_token(
        employee_id: int,
        company_id: int,
        role: EmployeeRole,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
        claims: Dict[str, Any] = {
            "sub": str(employee_id),
            "company_id": company_id,
            "role": EmployeeRole(role).value,
            "exp": expire,
            "iat": now,
            "jti": str(uuid4()),
            "type": "access",
        }
        return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def decode_employee(token: str) -> EmployeeContext:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"verify_aud": False},
        )
        try:
            return EmployeeContext(
                employee_id=int(payload["sub"]),
                company_id=int(payload["company_id"]),
                role=EmployeeRole(payload["role"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AuthenticationError(message="Token is missing employee claims", code="invalid_token") from e


async def get_current_employee(request: Request) -> EmployeeContext:
    """Route dependency returning the authenticated employee."""
    employee = getattr(request.state, "employee", None)
    if employee is None:
        raise AuthenticationError(message="Employee not authenticated", code="not_authenticated")
    return employee
