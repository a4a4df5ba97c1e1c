# partner_api/routes/referrals.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.db.session import get_session
from partner_api.routes.offers import offer_response
from partner_api.schemas.offer import CompanySummary, ReferralResolutionResponse
from partner_api.services.referral_resolver import ReferralLinkResolver

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.get("/{referral_link}", response_model=ReferralResolutionResponse)
async def resolve_referral_link(referral_link: str, session: AsyncSession = Depends(get_session)):
    """Public lookup of the offer and credited company behind a referral link."""
    resolution = await ReferralLinkResolver(session).resolve(referral_link)
    source = resolution.source_company
    return ReferralResolutionResponse(
        offer=offer_response(resolution.offer),
        is_inherited=resolution.is_inherited,
        stage=resolution.stage,
        source_company=CompanySummary.model_validate(source) if source is not None else None,
        attributed_company_id=resolution.attributed_company_id,
        attribution_chain=[CompanySummary.model_validate(c) for c in resolution.attribution_chain],
    )
