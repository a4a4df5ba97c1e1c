# partner_api/services/access_scope.py
from __future__ import annotations

from typing import Dict, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from partner_api.core.exceptions import AuthorizationError
from partner_api.models.enums import EmployeeRole
from partner_api.services.company_hierarchy import CompanyHierarchyResolver


class AccessScopeResolver:
    """
    Company-scope filter for partner employees.

    ADMINISTRATIVE employees see their company and every descendant;
    COMMERCIAL employees see their own company only.  Scopes are cached for
    the lifetime of the resolver, which is one request.
    """

    def __init__(self, session: AsyncSession, hierarchy: Optional[CompanyHierarchyResolver] = None):
        self.session = session
        self.hierarchy = hierarchy or CompanyHierarchyResolver(session)
        self._cache: Dict[Tuple[EmployeeRole, int], Set[int]] = {}

    async def authorized_company_ids(self, role: EmployeeRole, home_company_id: int) -> Set[int]:
        role = EmployeeRole(role)
        key = (role, home_company_id)
        if key not in self._cache:
            if role.can_view_subtree:
                self._cache[key] = await self.hierarchy.subtree(home_company_id)
            else:
                self._cache[key] = {home_company_id}
        return set(self._cache[key])

    async def can_access(self, role: EmployeeRole, home_company_id: int, company_id: int) -> bool:
        return company_id in await self.authorized_company_ids(role, home_company_id)

    async def ensure_can_access(self, role: EmployeeRole, home_company_id: int, company_id: int) -> None:
        if not await self.can_access(role, home_company_id, company_id):
            raise AuthorizationError(
                message="Company is outside your access scope",
                code="company_out_of_scope",
                details={"company_id": company_id},
            )

    async def filter_query(self, stmt, column, role: EmployeeRole, home_company_id: int):
        """Restrict ``stmt`` to rows whose ``column`` is inside the scope."""
        allowed = await self.authorized_company_ids(role, home_company_id)
        return stmt.where(column.in_(sorted(allowed)))
