# partner_api/routes/offer_inheritance.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.exceptions import AuthorizationError
from partner_api.db.session import get_session
from partner_api.middleware.auth import get_current_employee
from partner_api.models.company import Company
from partner_api.routes.offers import offer_response
from partner_api.schemas.employee import EmployeeContext
from partner_api.schemas.offer import (
    GenerateResponse,
    InheritanceOverviewResponse,
    InheritedCopyResponse,
    OfferResponse,
    OriginalOfferResponse,
    SyncResponse,
)
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.offer_inheritance import OfferInheritanceEngine

router = APIRouter(prefix="/offer-inheritance", tags=["offer-inheritance"])


async def _entitled_company(session: AsyncSession, employee: EmployeeContext) -> Company:
    if not employee.role.can_manage_inheritance:
        raise AuthorizationError(
            message="Only administrative employees can manage offer inheritance",
            code="inheritance_forbidden",
            details={"role": employee.role.value},
        )
    company = await CompanyHierarchyResolver(session).get_company(employee.company_id)
    if not company.has_premium_entitlement:
        raise AuthorizationError(
            message="Offer inheritance requires a premium company",
            code="premium_required",
            details={"company_id": company.id},
        )
    return company


@router.post("/generate/{child_company_id}", response_model=GenerateResponse)
async def generate_inherited_offers(
    child_company_id: int,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    company = await _entitled_company(session, employee)
    child = await CompanyHierarchyResolver(session).get_company(child_company_id)
    if child.parent_id != company.id:
        raise AuthorizationError(
            message="Company is not a direct child of yours",
            code="not_a_direct_child",
            details={"child_company_id": child.id},
        )

    created = await OfferInheritanceEngine(session).create_inherited_offers(company.id, child.id)
    return GenerateResponse(parent_company_id=company.id, child_company_id=child.id, created=created)


@router.post("/sync", response_model=SyncResponse)
async def sync_inherited_offers(
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    company = await _entitled_company(session, employee)
    report = await OfferInheritanceEngine(session).sync_inherited_offers(company.id)
    return SyncResponse(
        parent_company_id=report.parent_company_id,
        created=report.created,
        total_created=report.total_created,
        warnings=report.warnings,
    )


@router.get("", response_model=InheritanceOverviewResponse)
async def list_inheritance(
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    overview = await OfferInheritanceEngine(session).overview(employee.company_id)

    originals = []
    for offer in overview.original_offers:
        inherited_by = [
            InheritedCopyResponse(
                offer_id=c.offer.id,
                company_id=c.company.id,
                company_name=c.company.name,
                company_code=c.company.code,
                referral_link=c.offer.referral_link,
                is_active=c.offer.is_active,
            )
            for c in overview.copies.get(offer.id, [])
        ]
        originals.append(
            OriginalOfferResponse(**offer_response(offer).model_dump(), inherited_by=inherited_by)
        )

    return InheritanceOverviewResponse(
        inherited_offers=[offer_response(o) for o in overview.inherited_offers],
        original_offers=originals,
    )


@router.delete("/{offer_id}", response_model=OfferResponse)
async def deactivate_inherited_offer(
    offer_id: int,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    if not employee.role.can_manage_offers:
        raise AuthorizationError(
            message="Only administrative employees can manage offers",
            code="offer_management_forbidden",
        )
    offer = await OfferInheritanceEngine(session).deactivate_inherited_offer(employee.company_id, offer_id)
    return offer_response(offer)
