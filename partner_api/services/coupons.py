# partner_api/services/coupons.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.exceptions import AuthorizationError, ConflictError, NotFoundError
from partner_api.core.logging import get_structlog_logger
from partner_api.db.base import utcnow
from partner_api.models.coupon import Coupon
from partner_api.schemas.employee import EmployeeContext
from partner_api.services.access_scope import AccessScopeResolver
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.validation import validate_coupon

logger = get_structlog_logger(__name__)


async def _scoped_coupon(session: AsyncSession, employee: EmployeeContext, coupon_id: int) -> Coupon:
    stmt = select(Coupon).where(Coupon.id == coupon_id)
    stmt = await AccessScopeResolver(session).filter_query(
        stmt, Coupon.company_id, employee.role, employee.company_id
    )
    result = await session.execute(stmt)
    coupon = result.scalar_one_or_none()
    if coupon is None:
        raise NotFoundError(message="Coupon not found", code="coupon_not_found", details={"coupon_id": coupon_id})
    return coupon


async def list_coupons(session: AsyncSession, employee: EmployeeContext) -> List[Coupon]:
    stmt = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
    stmt = await AccessScopeResolver(session).filter_query(
        stmt, Coupon.company_id, employee.role, employee.company_id
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_coupon(
    session: AsyncSession,
    employee: EmployeeContext,
    data: Mapping[str, Any],
    target_company_id: Optional[int] = None,
) -> Coupon:
    clean = validate_coupon(data)

    company_id = employee.company_id
    if target_company_id is not None and target_company_id != employee.company_id:
        if not employee.role.can_view_subtree:
            raise AuthorizationError(
                message="Only administrative employees can create coupons for other companies",
                code="coupon_target_forbidden",
                details={"target_company_id": target_company_id},
            )
        await AccessScopeResolver(session).ensure_can_access(
            employee.role, employee.company_id, target_company_id
        )
        company_id = target_company_id

    hierarchy_ids = await CompanyHierarchyResolver(session).subtree(company_id)
    result = await session.execute(
        select(Coupon.id).where(Coupon.code == clean["code"], Coupon.company_id.in_(sorted(hierarchy_ids)))
    )
    existing = result.first()
    if existing is not None:
        raise ConflictError(
            message="Coupon code already exists in this company hierarchy",
            code="coupon_code_taken",
            details={"field": "code", "code": clean["code"], "existing_id": existing[0]},
        )

    coupon = Coupon(company_id=company_id, created_by_employee_id=employee.employee_id, **clean)
    session.add(coupon)
    await session.commit()

    logger.info("coupon.created", coupon_id=coupon.id, company_id=company_id, code=coupon.code)
    return coupon


async def set_coupon_status(
    session: AsyncSession,
    employee: EmployeeContext,
    coupon_id: int,
    is_active: bool,
) -> Coupon:
    coupon = await _scoped_coupon(session, employee, coupon_id)
    coupon.is_active = bool(is_active)
    await session.commit()
    logger.info("coupon.status_changed", coupon_id=coupon.id, is_active=coupon.is_active)
    return coupon


async def delete_coupon(session: AsyncSession, employee: EmployeeContext, coupon_id: int) -> None:
    if not employee.role.can_view_subtree:
        raise AuthorizationError(
            message="Only administrative employees can delete coupons",
            code="coupon_delete_forbidden",
        )
    coupon = await _scoped_coupon(session, employee, coupon_id)
    if coupon.used_count:
        raise ConflictError(
            message="Coupons that have been used cannot be deleted",
            code="coupon_in_use",
            details={"coupon_id": coupon.id, "used_count": coupon.used_count},
        )
    await session.delete(coupon)
    await session.commit()
    logger.info("coupon.deleted", coupon_id=coupon_id)


async def validate_coupon_code(session: AsyncSession, employee: EmployeeContext, code: str) -> Coupon:
    """Find a usable coupon by code inside the employee's scope."""
    now = utcnow()
    stmt = select(Coupon).where(Coupon.code == (code or "").strip(), Coupon.is_active.is_(True))
    stmt = await AccessScopeResolver(session).filter_query(
        stmt, Coupon.company_id, employee.role, employee.company_id
    )
    result = await session.execute(stmt.order_by(Coupon.id))

    for coupon in result.scalars().all():
        if coupon.valid_from is not None and _aware(coupon.valid_from) > now:
            continue
        if coupon.valid_until is not None and _aware(coupon.valid_until) < now:
            continue
        if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
            raise ConflictError(
                message="Coupon has no uses left",
                code="coupon_exhausted",
                details={"coupon_id": coupon.id},
            )
        return coupon

    raise NotFoundError(message="Coupon code is invalid or expired", code="coupon_not_found", details={"code": code})


def _aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
