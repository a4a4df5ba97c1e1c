import pytest
from sqlalchemy import select

from partner_api.core.exceptions import AuthorizationError
from partner_api.models import Company, EmployeeRole
from partner_api.services.access_scope import AccessScopeResolver


@pytest.fixture
async def tree(make_company):
    root = await make_company("ACME01")
    d1 = await make_company("SOUTH02", parent=root)
    d2 = await make_company("NORTH03", parent=root)
    d3 = await make_company("DEPOT04", parent=d1)
    sibling = await make_company("RIVAL05")
    return root, [d1, d2, d3], sibling


@pytest.mark.asyncio
async def test_administrative_scope_is_whole_subtree(db_session, tree):
    root, descendants, _ = tree
    scope = await AccessScopeResolver(db_session).authorized_company_ids(EmployeeRole.ADMINISTRATIVE, root.id)
    assert scope == {root.id} | {d.id for d in descendants}


@pytest.mark.asyncio
async def test_commercial_scope_is_home_only(db_session, tree):
    root, _, _ = tree
    scope = await AccessScopeResolver(db_session).authorized_company_ids(EmployeeRole.COMMERCIAL, root.id)
    assert scope == {root.id}


@pytest.mark.asyncio
async def test_child_cannot_reach_parent_or_sibling(db_session, tree):
    root, (south, north, depot), rival = tree
    resolver = AccessScopeResolver(db_session)
    role = EmployeeRole.ADMINISTRATIVE

    assert await resolver.can_access(role, south.id, depot.id)
    assert not await resolver.can_access(role, south.id, root.id)
    assert not await resolver.can_access(role, south.id, north.id)
    assert not await resolver.can_access(role, root.id, rival.id)


@pytest.mark.asyncio
async def test_ensure_can_access_raises(db_session, tree):
    root, (south, _, _), _ = tree
    with pytest.raises(AuthorizationError) as ei:
        await AccessScopeResolver(db_session).ensure_can_access(EmployeeRole.COMMERCIAL, root.id, south.id)
    assert ei.value.code == "company_out_of_scope"
    assert ei.value.status_code == 403


@pytest.mark.asyncio
async def test_filter_query(db_session, tree):
    root, (south, _, depot), _ = tree
    stmt = await AccessScopeResolver(db_session).filter_query(
        select(Company.code).order_by(Company.id), Company.id, EmployeeRole.ADMINISTRATIVE, south.id
    )
    result = await db_session.execute(stmt)
    assert [row[0] for row in result.all()] == ["SOUTH02", "DEPOT04"]


@pytest.mark.asyncio
async def test_role_accepts_plain_strings(db_session, tree):
    root, _, _ = tree
    scope = await AccessScopeResolver(db_session).authorized_company_ids("COMMERCIAL", root.id)
    assert scope == {root.id}
