# partner_api/services/offer_inheritance.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.config import settings
from partner_api.core.exceptions import BaseAPIException, ConflictError, NotFoundError
from partner_api.core.logging import get_structlog_logger
from partner_api.models.company import Company
from partner_api.models.enums import RegistrationStatus
from partner_api.models.offer import Offer
from partner_api.models.registration import Registration
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.referral_codec import encode_child_link

logger = get_structlog_logger(__name__)

# Commercial terms copied from an original offer onto its inherited copies
INHERITED_FIELDS = (
    "course_id",
    "name",
    "offer_type",
    "total_amount",
    "installments",
    "installment_frequency",
    "custom_payment_plan",
)


@dataclass(frozen=True)
class SyncReport:
    parent_company_id: int
    created: Dict[int, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_created(self) -> int:
        return sum(self.created.values())


@dataclass(frozen=True)
class InheritedCopy:
    offer: Offer
    company: Company


@dataclass(frozen=True)
class InheritanceOverview:
    inherited_offers: List[Offer]
    original_offers: List[Offer]
    copies: Dict[int, List[InheritedCopy]]


async def generate_unique_link(
    session: AsyncSession,
    build: Callable[[], str],
    *,
    reserved: Optional[Set[str]] = None,
    max_attempts: Optional[int] = None,
) -> str:
    """Draw links from ``build`` until one is unused in the store and in ``reserved``."""
    attempts = max_attempts or settings.referral_link_max_attempts
    reserved = reserved if reserved is not None else set()

    for attempt in range(1, attempts + 1):
        link = build()
        if link in reserved:
            continue
        result = await session.execute(select(Offer.id).where(Offer.referral_link == link))
        if result.first() is None:
            reserved.add(link)
            return link
        logger.warning("referral_link.collision", attempt=attempt)

    raise ConflictError(
        message="Could not generate a unique referral link",
        code="referral_link_exhausted",
        details={"attempts": attempts},
    )


class OfferInheritanceEngine:
    """Propagates a root company's offers to its direct children.

    Each child receives at most one copy per original offer, keyed by
    ``(parent_offer_id, company_id)``.  Copies get their own hierarchical
    referral link and are never regenerated once they exist.
    """

    def __init__(self, session: AsyncSession, hierarchy: Optional[CompanyHierarchyResolver] = None):
        self.session = session
        self.hierarchy = hierarchy or CompanyHierarchyResolver(session)

    async def create_inherited_offers(
        self,
        parent_company_id: int,
        child_company_id: int,
        *,
        commit: bool = True,
    ) -> int:
        parent = await self.hierarchy.get_company(parent_company_id)
        child = await self.hierarchy.get_company(child_company_id)

        created = 0
        for attempt in (1, 2):
            try:
                async with self.session.begin_nested():
                    created = await self._copy_missing_offers(parent, child)
                break
            except IntegrityError as e:
                # Another writer inserted the same (parent_offer_id, company_id)
                if attempt == 2:
                    raise ConflictError(
                        message="Inherited offers were modified concurrently",
                        code="inheritance_conflict",
                        details={"parent_company_id": parent.id, "child_company_id": child.id},
                    ) from e
                logger.warning(
                    "offer_inheritance.insert_race",
                    parent_company_id=parent.id,
                    child_company_id=child.id,
                    error=str(e.orig),
                )

        if commit:
            await self.session.commit()

        if created:
            logger.info(
                "offer_inheritance.created",
                parent_company_id=parent.id,
                child_company_id=child.id,
                created=created,
            )
        return created

    async def _copy_missing_offers(self, parent: Company, child: Company) -> int:
        result = await self.session.execute(
            select(Offer)
            .where(
                Offer.company_id == parent.id,
                Offer.is_active.is_(True),
                Offer.is_inherited.is_(False),
            )
            .order_by(Offer.id)
        )
        originals = list(result.scalars().all())
        if not originals:
            return 0

        # Inactive copies count too: a deactivated copy is not recreated
        result = await self.session.execute(
            select(Offer.parent_offer_id).where(
                Offer.company_id == child.id,
                Offer.parent_offer_id.in_([o.id for o in originals]),
            )
        )
        already_copied = {row[0] for row in result.all()}

        reserved: Set[str] = set()
        copies: List[Offer] = []
        for original in originals:
            if original.id in already_copied:
                continue
            link = await generate_unique_link(
                self.session,
                lambda: encode_child_link(parent.code, child.code, original.offer_type),
                reserved=reserved,
            )
            copy = Offer(
                company_id=child.id,
                referral_link=link,
                is_active=True,
                is_inherited=True,
                parent_offer_id=original.id,
                created_by_employee_id=original.created_by_employee_id,
            )
            for name in INHERITED_FIELDS:
                setattr(copy, name, getattr(original, name))
            copies.append(copy)

        if copies:
            self.session.add_all(copies)
            await self.session.flush()
        return len(copies)

    async def sync_inherited_offers(self, parent_company_id: int) -> SyncReport:
        """Run ``create_inherited_offers`` for every immediate child.

        A failing child is logged and reported; its siblings still run.
        """
        await self.hierarchy.get_company(parent_company_id)
        report = SyncReport(parent_company_id=parent_company_id)

        for child_id in await self.hierarchy.children(parent_company_id):
            created = await self._create_isolated(parent_company_id, child_id, report.warnings)
            if created is not None:
                report.created[child_id] = created

        logger.info(
            "offer_inheritance.synced",
            parent_company_id=parent_company_id,
            children=len(report.created) + len(report.warnings),
            created=report.total_created,
            failures=len(report.warnings),
        )
        return report

    async def heal_child(self, company: Company) -> int:
        """Create any copies ``company`` is missing from its immediate parent."""
        if company.parent_id is None:
            return 0
        warnings: List[str] = []
        created = await self._create_isolated(company.parent_id, company.id, warnings)
        return created or 0

    async def _create_isolated(self, parent_id: int, child_id: int, warnings: List[str]) -> Optional[int]:
        try:
            return await self.create_inherited_offers(parent_id, child_id)
        except (BaseAPIException, SQLAlchemyError) as e:
            message = getattr(e, "message", None) or str(e)
            logger.warning(
                "offer_inheritance.child_failed",
                parent_company_id=parent_id,
                child_company_id=child_id,
                error_type=type(e).__name__,
                error=message,
            )
            warnings.append(f"company {child_id}: {message}")
            return None

    async def inherited_copies(self, offer_id: int) -> List[Offer]:
        result = await self.session.execute(
            select(Offer).where(Offer.parent_offer_id == offer_id).order_by(Offer.id)
        )
        return list(result.scalars().all())

    async def propagate_terms(self, original: Offer) -> int:
        """Copy terms onto existing copies; links are kept.

        Deactivating the original deactivates its copies. Propagation never
        switches a copy back on, so a copy its company turned off stays off.
        """
        copies = await self.inherited_copies(original.id)
        for copy in copies:
            for name in INHERITED_FIELDS:
                setattr(copy, name, getattr(original, name))
            if not original.is_active:
                copy.is_active = False
        if copies:
            await self.session.flush()
        return len(copies)

    async def retire_offer(self, original: Offer) -> str:
        """Remove an original offer and its copies.

        Copies already used by registrations keep the history intact: the
        whole family is deactivated instead of deleted.
        """
        copies = await self.inherited_copies(original.id)
        copy_ids = [c.id for c in copies]

        used = 0
        if copy_ids:
            result = await self.session.execute(
                select(func.count(Registration.id)).where(Registration.offer_id.in_(copy_ids))
            )
            used = int(result.scalar_one())

        if used:
            original.is_active = False
            for copy in copies:
                copy.is_active = False
            await self.session.flush()
            logger.info("offer.retired", offer_id=original.id, outcome="deactivated", copies=len(copies))
            return "deactivated"

        for copy in copies:
            await self.session.delete(copy)
        await self.session.flush()
        await self.session.delete(original)
        await self.session.flush()
        logger.info("offer.retired", offer_id=original.id, outcome="deleted", copies=len(copies))
        return "deleted"

    async def deactivate_inherited_offer(self, company_id: int, offer_id: int) -> Offer:
        """Let a child switch off one of its inherited offers."""
        result = await self.session.execute(
            select(Offer).where(
                Offer.id == offer_id,
                Offer.company_id == company_id,
                Offer.is_inherited.is_(True),
            )
        )
        offer = result.scalar_one_or_none()
        if offer is None:
            raise NotFoundError(
                message="Inherited offer not found",
                code="inherited_offer_not_found",
                details={"offer_id": offer_id},
            )

        result = await self.session.execute(
            select(func.count(Registration.id)).where(
                Registration.offer_id == offer_id,
                Registration.status != RegistrationStatus.PENDING.value,
            )
        )
        active = int(result.scalar_one())
        if active:
            raise ConflictError(
                message="Offer has active registrations",
                code="offer_in_use",
                details={"offer_id": offer_id, "registrations": active},
            )

        offer.is_active = False
        await self.session.commit()
        logger.info("offer_inheritance.deactivated", offer_id=offer_id, company_id=company_id)
        return offer

    async def overview(self, company_id: int) -> InheritanceOverview:
        result = await self.session.execute(
            select(Offer)
            .where(Offer.company_id == company_id, Offer.is_inherited.is_(True), Offer.is_active.is_(True))
            .order_by(Offer.created_at.desc(), Offer.id.desc())
        )
        inherited = list(result.scalars().all())

        result = await self.session.execute(
            select(Offer)
            .where(Offer.company_id == company_id, Offer.is_inherited.is_(False), Offer.is_active.is_(True))
            .order_by(Offer.created_at.desc(), Offer.id.desc())
        )
        originals = list(result.scalars().all())

        copies: Dict[int, List[InheritedCopy]] = {o.id: [] for o in originals}
        if originals:
            result = await self.session.execute(
                select(Offer, Company)
                .join(Company, Company.id == Offer.company_id)
                .where(Offer.parent_offer_id.in_(list(copies)))
                .order_by(Offer.id)
            )
            for offer, company in result.all():
                copies[offer.parent_offer_id].append(InheritedCopy(offer=offer, company=company))

        return InheritanceOverview(inherited_offers=inherited, original_offers=originals, copies=copies)
