from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Field checks live in services.validation so errors carry domain codes
class OfferCreate(BaseModel):
    course_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=200)
    offer_type: Optional[str] = None
    total_amount: Optional[Decimal] = None
    installments: Optional[int] = None
    installment_frequency: Optional[int] = None
    custom_payment_plan: Optional[List[Dict[str, Any]]] = None


class OfferUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    total_amount: Optional[Decimal] = None
    installments: Optional[int] = None
    installment_frequency: Optional[int] = None
    custom_payment_plan: Optional[List[Dict[str, Any]]] = None
    is_active: Optional[bool] = None


class OfferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    course_id: int
    name: str
    offer_type: str
    total_amount: Decimal
    installments: int
    installment_frequency: int
    custom_payment_plan: Optional[List[Dict[str, Any]]] = None
    referral_link: str
    is_active: bool
    is_inherited: bool
    parent_offer_id: Optional[int] = None
    created_at: datetime
    registration_count: int = 0


class OfferMutationResponse(BaseModel):
    offer: OfferResponse
    warnings: List[str] = Field(default_factory=list)


class OfferDeleteResponse(BaseModel):
    offer_id: int
    outcome: str


class CompanySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str
    parent_id: Optional[int] = None


class ReferralResolutionResponse(BaseModel):
    offer: OfferResponse
    is_inherited: bool
    stage: str
    source_company: Optional[CompanySummary] = None
    attributed_company_id: int
    attribution_chain: List[CompanySummary]


class InheritedCopyResponse(BaseModel):
    offer_id: int
    company_id: int
    company_name: str
    company_code: str
    referral_link: str
    is_active: bool


class OriginalOfferResponse(OfferResponse):
    inherited_by: List[InheritedCopyResponse] = Field(default_factory=list)


class InheritanceOverviewResponse(BaseModel):
    inherited_offers: List[OfferResponse]
    original_offers: List[OriginalOfferResponse]


class SyncResponse(BaseModel):
    parent_company_id: int
    created: Dict[int, int]
    total_created: int
    warnings: List[str]


class GenerateResponse(BaseModel):
    parent_company_id: int
    child_company_id: int
    created: int
