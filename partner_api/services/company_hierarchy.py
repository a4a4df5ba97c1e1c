# partner_api/services/company_hierarchy.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.exceptions import DataIntegrityError, NotFoundError
from partner_api.core.logging import get_structlog_logger
from partner_api.models.company import Company

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class HierarchyReport:
    company_count: int
    root_ids: List[int]
    orphaned_ids: List[int] = field(default_factory=list)

    @property
    def is_acyclic(self) -> bool:
        return not self.orphaned_ids


class CompanyHierarchyResolver:
    """Walks the partner company tree.

    Traversal is breadth first with one query per level.  A company reached
    twice means the stored parent links form a cycle; that is reported as a
    ``DataIntegrityError`` instead of looping.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_company(self, company_id: int) -> Company:
        company = await self.session.get(Company, company_id)
        if company is None:
            raise NotFoundError(
                message="Company not found",
                code="company_not_found",
                details={"company_id": company_id},
            )
        return company

    async def find_company(self, company_id: Optional[int]) -> Optional[Company]:
        if company_id is None:
            return None
        return await self.session.get(Company, company_id)

    async def children(self, company_id: int) -> List[int]:
        result = await self.session.execute(
            select(Company.id).where(Company.parent_id == company_id).order_by(Company.id)
        )
        return [row[0] for row in result.all()]

    async def descendants(self, company_id: int) -> Set[int]:
        """Ids of every transitive descendant of ``company_id``, root excluded."""
        visited: Set[int] = {company_id}
        found: Set[int] = set()
        frontier: List[int] = [company_id]

        while frontier:
            result = await self.session.execute(
                select(Company.id, Company.parent_id).where(Company.parent_id.in_(frontier))
            )
            next_frontier: List[int] = []
            for child_id, parent_id in result.all():
                if child_id in visited:
                    logger.error(
                        "company_hierarchy.cycle_detected",
                        root_id=company_id,
                        company_id=child_id,
                        parent_id=parent_id,
                    )
                    raise DataIntegrityError(
                        message="Company hierarchy contains a cycle",
                        code="company_hierarchy_cycle",
                        details={"root_id": company_id, "company_id": child_id, "parent_id": parent_id},
                    )
                visited.add(child_id)
                found.add(child_id)
                next_frontier.append(child_id)
            frontier = next_frontier

        return found

    async def subtree(self, company_id: int) -> Set[int]:
        return {company_id} | await self.descendants(company_id)

    async def ancestors(self, company_id: int) -> List[Company]:
        """Ancestors of ``company_id`` ordered from the root down."""
        chain: List[Company] = []
        seen: Set[int] = {company_id}
        company = await self.get_company(company_id)

        while company.parent_id is not None:
            if company.parent_id in seen:
                raise DataIntegrityError(
                    message="Company hierarchy contains a cycle",
                    code="company_hierarchy_cycle",
                    details={"company_id": company_id, "parent_id": company.parent_id},
                )
            seen.add(company.parent_id)
            parent = await self.find_company(company.parent_id)
            if parent is None:
                break
            chain.append(parent)
            company = parent

        chain.reverse()
        return chain

    async def codes_for(self, company_ids: Iterable[int]) -> Dict[int, str]:
        ids = list(company_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Company.id, Company.code).where(Company.id.in_(ids)))
        return {row.id: row.code for row in result.all()}

    async def verify_acyclic(self) -> HierarchyReport:
        """Walk every root; companies not reached from any root sit on a cycle."""
        result = await self.session.execute(select(Company.id, Company.parent_id))
        rows = result.all()
        all_ids = {row.id for row in rows}
        roots = sorted(row.id for row in rows if row.parent_id is None)

        reached: Set[int] = set()
        for root_id in roots:
            reached |= await self.subtree(root_id)

        orphaned = sorted(all_ids - reached)
        if orphaned:
            logger.warning("company_hierarchy.unreachable_companies", company_ids=orphaned)

        return HierarchyReport(company_count=len(all_ids), root_ids=roots, orphaned_ids=orphaned)
