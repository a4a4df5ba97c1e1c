# partner_api/routes/coupons.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.db.session import get_session
from partner_api.middleware.auth import get_current_employee
from partner_api.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponStatusUpdate,
    CouponValidateRequest,
)
from partner_api.schemas.employee import EmployeeContext
from partner_api.services import coupons as coupon_service

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.get("", response_model=List[CouponResponse])
async def list_coupons(
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    return await coupon_service.list_coupons(session, employee)


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    data = payload.model_dump(exclude={"target_company_id"})
    return await coupon_service.create_coupon(session, employee, data, payload.target_company_id)


@router.post("/validate", response_model=CouponResponse)
async def validate_coupon(
    payload: CouponValidateRequest,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    return await coupon_service.validate_coupon_code(session, employee, payload.code)


@router.put("/{coupon_id}/status", response_model=CouponResponse)
async def set_coupon_status(
    coupon_id: int,
    payload: CouponStatusUpdate,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    return await coupon_service.set_coupon_status(session, employee, coupon_id, payload.is_active)


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(
    coupon_id: int,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    await coupon_service.delete_coupon(session, employee, coupon_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
