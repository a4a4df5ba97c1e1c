# partner_api/routes/offers.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.db.session import get_session
from partner_api.middleware.auth import get_current_employee
from partner_api.models.offer import Offer
from partner_api.schemas.employee import EmployeeContext
from partner_api.schemas.offer import (
    OfferCreate,
    OfferDeleteResponse,
    OfferMutationResponse,
    OfferResponse,
    OfferUpdate,
)
from partner_api.services import offers as offer_service

router = APIRouter(prefix="/offers", tags=["offers"])


def offer_response(offer: Offer, registration_count: int = 0) -> OfferResponse:
    return OfferResponse.model_validate(offer).model_copy(update={"registration_count": registration_count})


@router.get("", response_model=List[OfferResponse])
async def list_offers(
    company_id: Optional[int] = Query(default=None, description="Company in scope; defaults to the caller's"),
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    views = await offer_service.list_offers(session, employee, company_id)
    return [offer_response(v.offer, v.registration_count) for v in views]


@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(
    offer_id: int,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    view = await offer_service.get_offer(session, employee, offer_id)
    return offer_response(view.offer, view.registration_count)


@router.post("", response_model=OfferMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    payload: OfferCreate,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    result = await offer_service.create_offer(session, employee, payload.model_dump())
    return OfferMutationResponse(offer=offer_response(result.offer), warnings=result.warnings)


@router.put("/{offer_id}", response_model=OfferMutationResponse)
async def update_offer(
    offer_id: int,
    payload: OfferUpdate,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    result = await offer_service.update_offer(
        session, employee, offer_id, payload.model_dump(exclude_unset=True)
    )
    return OfferMutationResponse(offer=offer_response(result.offer), warnings=result.warnings)


@router.delete("/{offer_id}", response_model=OfferDeleteResponse)
async def delete_offer(
    offer_id: int,
    session: AsyncSession = Depends(get_session),
    employee: EmployeeContext = Depends(get_current_employee),
):
    outcome = await offer_service.delete_offer(session, employee, offer_id)
    return OfferDeleteResponse(offer_id=offer_id, outcome=outcome)
