from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CouponCreate(BaseModel):
    code: Optional[str] = Field(default=None, max_length=64)
    discount_type: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None
    max_uses: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    target_company_id: Optional[int] = None


class CouponStatusUpdate(BaseModel):
    is_active: bool


class CouponValidateRequest(BaseModel):
    code: str


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    code: str
    discount_type: str
    discount_amount: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None
    max_uses: Optional[int] = None
    used_count: int
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool
    created_at: datetime
