from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RegistrationIn(BaseModel):
    referral_link: str = Field(..., min_length=1, max_length=255)
    applicant_reference: str = Field(..., min_length=1, max_length=255)


class RegistrationResponse(BaseModel):
    registration_id: int
    offer_id: int
    company_id: int
    source_company_id: Optional[int] = None
    stage: str
    status: str


class CompanyRegistrationStatsResponse(BaseModel):
    company_id: int
    company_code: str
    company_name: str
    total: int
    by_status: Dict[str, int]


class RegistrationStatsResponse(BaseModel):
    companies: List[CompanyRegistrationStatsResponse]
    total: int
