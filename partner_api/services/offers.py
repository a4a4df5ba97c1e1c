# partner_api/services/offers.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.config import settings
from partner_api.core.exceptions import AuthorizationError, BaseAPIException, ConflictError, NotFoundError
from partner_api.core.logging import get_structlog_logger
from partner_api.models.company import Company
from partner_api.models.offer import Offer
from partner_api.models.registration import Registration
from partner_api.schemas.employee import EmployeeContext
from partner_api.services.access_scope import AccessScopeResolver
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.offer_inheritance import OfferInheritanceEngine, generate_unique_link
from partner_api.services.referral_codec import encode_direct_link
from partner_api.services.validation import validate_offer

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class OfferView:
    offer: Offer
    registration_count: int = 0


@dataclass(frozen=True)
class OfferMutation:
    offer: Offer
    warnings: List[str] = field(default_factory=list)


async def _registration_counts(session: AsyncSession, offer_ids: List[int]) -> Dict[int, int]:
    if not offer_ids:
        return {}
    result = await session.execute(
        select(Registration.offer_id, func.count(Registration.id))
        .where(Registration.offer_id.in_(offer_ids))
        .group_by(Registration.offer_id)
    )
    return {offer_id: int(count) for offer_id, count in result.all()}


async def _manager_company(session: AsyncSession, employee: EmployeeContext) -> Company:
    """Company of an employee allowed to write offers; only roots own originals."""
    if not employee.role.can_manage_offers:
        raise AuthorizationError(
            message="Only administrative employees can manage offers",
            code="offer_management_forbidden",
            details={"role": employee.role.value},
        )
    company = await CompanyHierarchyResolver(session).get_company(employee.company_id)
    if company.parent_id is not None:
        raise AuthorizationError(
            message="Companies with a parent cannot create or edit offers",
            code="child_company_cannot_own_offers",
            details={"company_id": company.id, "parent_id": company.parent_id},
        )
    return company


async def _owned_offer(session: AsyncSession, company_id: int, offer_id: int) -> Offer:
    result = await session.execute(
        select(Offer).where(Offer.id == offer_id, Offer.company_id == company_id)
    )
    offer = result.scalar_one_or_none()
    if offer is None:
        raise NotFoundError(
            message="Offer not found",
            code="offer_not_found",
            details={"offer_id": offer_id},
        )
    return offer


async def _fan_out(session: AsyncSession, company: Company) -> List[str]:
    if not settings.eager_inheritance_sync:
        return []
    try:
        report = await OfferInheritanceEngine(session).sync_inherited_offers(company.id)
    except (BaseAPIException, SQLAlchemyError) as e:
        logger.warning("offer_inheritance.sync_failed", company_id=company.id, error=str(e))
        return [f"inheritance sync failed: {getattr(e, 'message', None) or e}"]
    return list(report.warnings)


async def list_offers(
    session: AsyncSession,
    employee: EmployeeContext,
    company_id: Optional[int] = None,
) -> List[OfferView]:
    """Offers owned by a company in scope, healing missing inherited copies first."""
    target_id = company_id if company_id is not None else employee.company_id
    await AccessScopeResolver(session).ensure_can_access(employee.role, employee.company_id, target_id)

    company = await CompanyHierarchyResolver(session).get_company(target_id)
    if settings.lazy_inheritance_heal and company.parent_id is not None:
        await OfferInheritanceEngine(session).heal_child(company)

    result = await session.execute(
        select(Offer)
        .where(Offer.company_id == target_id)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    offers = list(result.scalars().all())
    counts = await _registration_counts(session, [o.id for o in offers])
    return [OfferView(offer=o, registration_count=counts.get(o.id, 0)) for o in offers]


async def get_offer(session: AsyncSession, employee: EmployeeContext, offer_id: int) -> OfferView:
    offer = await session.get(Offer, offer_id)
    if offer is None:
        raise NotFoundError(message="Offer not found", code="offer_not_found", details={"offer_id": offer_id})
    await AccessScopeResolver(session).ensure_can_access(employee.role, employee.company_id, offer.company_id)
    counts = await _registration_counts(session, [offer.id])
    return OfferView(offer=offer, registration_count=counts.get(offer.id, 0))


async def create_offer(
    session: AsyncSession,
    employee: EmployeeContext,
    data: Mapping[str, Any],
) -> OfferMutation:
    company = await _manager_company(session, employee)
    clean = validate_offer(data)

    link = await generate_unique_link(session, lambda: encode_direct_link(company.code))
    offer = Offer(
        company_id=company.id,
        referral_link=link,
        is_active=True,
        is_inherited=False,
        created_by_employee_id=employee.employee_id,
        **clean,
    )
    session.add(offer)
    await session.commit()

    logger.info(
        "offer.created",
        offer_id=offer.id,
        company_id=company.id,
        offer_type=offer.offer_type,
        employee_id=employee.employee_id,
    )

    warnings = await _fan_out(session, company)
    return OfferMutation(offer=offer, warnings=warnings)


async def update_offer(
    session: AsyncSession,
    employee: EmployeeContext,
    offer_id: int,
    data: Mapping[str, Any],
) -> OfferMutation:
    company = await _manager_company(session, employee)
    offer = await _owned_offer(session, company.id, offer_id)
    clean = validate_offer(data, partial=True)

    offer.update(**clean)
    copies = await OfferInheritanceEngine(session).propagate_terms(offer)
    await session.commit()

    logger.info(
        "offer.updated",
        offer_id=offer.id,
        company_id=company.id,
        fields=sorted(clean),
        copies_updated=copies,
    )

    warnings = await _fan_out(session, company)
    return OfferMutation(offer=offer, warnings=warnings)


async def delete_offer(session: AsyncSession, employee: EmployeeContext, offer_id: int) -> str:
    """Delete an original offer; returns ``"deleted"`` or ``"deactivated"``."""
    company = await _manager_company(session, employee)
    offer = await _owned_offer(session, company.id, offer_id)

    counts = await _registration_counts(session, [offer.id])
    if counts.get(offer.id):
        raise ConflictError(
            message="Offers with registrations cannot be deleted",
            code="offer_has_registrations",
            details={"offer_id": offer.id, "registrations": counts[offer.id]},
        )

    outcome = await OfferInheritanceEngine(session).retire_offer(offer)
    await session.commit()
    return outcome
