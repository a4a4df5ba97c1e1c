# partner_api/services/referral_resolver.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.exceptions import NotFoundError
from partner_api.core.logging import get_structlog_logger
from partner_api.models.company import Company
from partner_api.models.offer import Offer
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.referral_codec import ReferralLink, decode, prefix_candidates

logger = get_structlog_logger(__name__)

STAGE_EXACT = "exact"
STAGE_DECODED = "decoded"
STAGE_DEGRADED = "degraded"


@dataclass(frozen=True)
class ReferralResolution:
    offer: Offer
    is_inherited: bool
    source_company: Optional[Company]
    attribution_chain: Tuple[Company, ...]
    stage: str

    @property
    def attributed_company_id(self) -> int:
        if self.source_company is not None:
            return self.source_company.id
        return self.offer.company_id


class ReferralLinkResolver:
    """Maps an inbound referral link to an offer and the company credited.

    Stages run in order and stop at the first hit:

    1. exact match on an active offer's link;
    2. on an exact hit with a hierarchical shape, re-derive the acting child
       from the link's code prefix;
    3. decoded fallback: parent by code, its original offer by hash and type
       tag, child by code among the parent's real children;
    4. if the claimed child is not a child of the parent, the parent's offer
       is returned without attribution.
    """

    def __init__(self, session: AsyncSession, hierarchy: Optional[CompanyHierarchyResolver] = None):
        self.session = session
        self.hierarchy = hierarchy or CompanyHierarchyResolver(session)

    async def resolve(self, link: str) -> ReferralResolution:
        value = (link or "").strip()
        if not value:
            raise NotFoundError(message="Referral link not found", code="referral_link_not_found")

        decoded = decode(value)

        offer = await self._exact_match(value)
        if offer is not None:
            source = None
            if decoded.is_hierarchical:
                source = await self._backfill_source(value)
            return await self._finish(value, offer, source, STAGE_EXACT)

        parent = await self._company_by_code(decoded.parent_code)
        if parent is None:
            raise self._not_found(value, "unknown_parent_code")

        original = await self._original_offer_for(parent, decoded)
        if original is None:
            raise self._not_found(value, "no_matching_offer")

        if decoded.is_hierarchical and decoded.child_code:
            child = await self._child_by_code(parent.id, decoded.child_code)
            if child is None:
                logger.warning(
                    "referral.degraded",
                    link=value,
                    parent_code=parent.code,
                    claimed_child_code=decoded.child_code,
                )
                return await self._finish(value, original, None, STAGE_DEGRADED)
            return await self._finish(value, original, child, STAGE_DECODED)

        return await self._finish(value, original, None, STAGE_DECODED)

    async def _exact_match(self, link: str) -> Optional[Offer]:
        result = await self.session.execute(
            select(Offer).where(Offer.referral_link == link, Offer.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def _company_by_code(self, code: str) -> Optional[Company]:
        if not code:
            return None
        result = await self.session.execute(select(Company).where(Company.code == code))
        return result.scalar_one_or_none()

    async def _child_by_code(self, parent_id: int, code: str) -> Optional[Company]:
        result = await self.session.execute(
            select(Company).where(Company.code == code, Company.parent_id == parent_id)
        )
        return result.scalar_one_or_none()

    async def _longest_code_match(self, candidates: List[str], parent_id: Optional[int] = None) -> Optional[Company]:
        if not candidates:
            return None
        stmt = select(Company).where(Company.code.in_(candidates))
        if parent_id is not None:
            stmt = stmt.where(Company.parent_id == parent_id)
        result = await self.session.execute(stmt)
        matches = list(result.scalars().all())
        if not matches:
            return None
        return max(matches, key=lambda c: len(c.code))

    async def _backfill_source(self, link: str) -> Optional[Company]:
        parent = await self._longest_code_match(prefix_candidates(link))
        if parent is None:
            return None
        remainder = link[len(parent.code) + 1:]
        return await self._longest_code_match(prefix_candidates(remainder), parent_id=parent.id)

    async def _original_offer_for(self, parent: Company, decoded: ReferralLink) -> Optional[Offer]:
        if not decoded.hash:
            return None
        stmt = (
            select(Offer)
            .where(
                Offer.company_id == parent.id,
                Offer.is_inherited.is_(False),
                Offer.is_active.is_(True),
                Offer.referral_link.endswith(decoded.hash, autoescape=True),
            )
            .order_by(Offer.id)
            .limit(1)
        )
        if decoded.offer_type is not None:
            stmt = stmt.where(Offer.offer_type == decoded.offer_type.value)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _finish(
        self,
        link: str,
        offer: Offer,
        source: Optional[Company],
        stage: str,
    ) -> ReferralResolution:
        attributed_id = source.id if source is not None else offer.company_id
        attributed = source or await self.hierarchy.get_company(attributed_id)
        chain = tuple(await self.hierarchy.ancestors(attributed_id)) + (attributed,)

        logger.info(
            "referral.resolved",
            link=link,
            stage=stage,
            offer_id=offer.id,
            source_company_id=source.id if source is not None else None,
        )
        return ReferralResolution(
            offer=offer,
            is_inherited=bool(offer.is_inherited),
            source_company=source,
            attribution_chain=chain,
            stage=stage,
        )

    @staticmethod
    def _not_found(link: str, reason: str) -> NotFoundError:
        logger.info("referral.not_found", link=link, reason=reason)
        return NotFoundError(
            message="Referral link not found",
            code="referral_link_not_found",
            details={"referral_link": link, "reason": reason},
        )
