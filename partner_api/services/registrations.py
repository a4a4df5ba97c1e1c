# partner_api/services/registrations.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.exceptions import ValidationError
from partner_api.core.logging import get_structlog_logger
from partner_api.models.company import Company
from partner_api.models.enums import RegistrationStatus
from partner_api.models.registration import Registration
from partner_api.schemas.employee import EmployeeContext
from partner_api.services.access_scope import AccessScopeResolver
from partner_api.services.referral_resolver import ReferralLinkResolver, ReferralResolution

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class CompanyRegistrationStats:
    company_id: int
    company_code: str
    company_name: str
    by_status: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.by_status.values())


async def record_registration(
    session: AsyncSession,
    referral_link: str,
    applicant_reference: str,
) -> Tuple[Registration, ReferralResolution]:
    """Resolve ``referral_link`` and credit the enrollment to the attributed company."""
    reference = (applicant_reference or "").strip()
    if not reference:
        raise ValidationError(
            message="applicant_reference is required",
            code="invalid_registration",
            details={"field": "applicant_reference"},
        )

    resolution = await ReferralLinkResolver(session).resolve(referral_link)
    registration = Registration(
        offer_id=resolution.offer.id,
        company_id=resolution.attributed_company_id,
        referral_link=referral_link.strip(),
        applicant_reference=reference,
        status=RegistrationStatus.PENDING.value,
    )
    session.add(registration)
    await session.commit()

    logger.info(
        "registration.recorded",
        registration_id=registration.id,
        offer_id=registration.offer_id,
        company_id=registration.company_id,
        stage=resolution.stage,
    )
    return registration, resolution


async def registration_stats(session: AsyncSession, employee: EmployeeContext) -> List[CompanyRegistrationStats]:
    """Registration counts per credited company, limited to the employee's scope."""
    allowed = await AccessScopeResolver(session).authorized_company_ids(employee.role, employee.company_id)

    result = await session.execute(
        select(Company.id, Company.code, Company.name)
        .where(Company.id.in_(sorted(allowed)))
        .order_by(Company.id)
    )
    stats = {
        row.id: CompanyRegistrationStats(company_id=row.id, company_code=row.code, company_name=row.name)
        for row in result.all()
    }

    result = await session.execute(
        select(Registration.company_id, Registration.status, func.count(Registration.id))
        .where(Registration.company_id.in_(sorted(allowed)))
        .group_by(Registration.company_id, Registration.status)
    )
    for company_id, status, count in result.all():
        stats[company_id].by_status[status] = int(count)

    return list(stats.values())
