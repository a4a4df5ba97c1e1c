# partner_api/routes/registrations.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.db.session import get_session
from partner_api.middleware.auth import get_current_employee
from partner_api.schemas.employee import EmployeeContext
from partner_api.schemas.registration import (
    CompanyRegistrationStatsResponse,
    RegistrationIn,
    RegistrationResponse,
    RegistrationStatsResponse,
)
from partner_api.services import registrations as registration_service

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post("", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def record_registration(payload: RegistrationIn, session: AsyncSession = Depends(get_session)):
    registration, resolution = await registration_service.record_registration(
        session, payload.referral_link, payload.applicant_reference
    )
    return RegistrationResponse(
        registration_id=registration.id,
        offer_id=registration.offer_id,
        company_id=registration.company_id,
        source_company_id=resolution.source_company.id if resolution.source_company is not None else None,
        stage=resolution.stage,
        status=registration.status,
    )


@router.get("/stats", response_model=RegistrationStatsResponse)
async def registration_stats(
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    stats = await registration_service.registration_stats(session, employee)
    companies = [
        CompanyRegistrationStatsResponse(
            company_id=s.company_id,
            company_code=s.company_code,
            company_name=s.company_name,
            total=s.total,
            by_status=s.by_status,
        )
        for s in stats
    ]
    return RegistrationStatsResponse(companies=companies, total=sum(c.total for c in companies))
