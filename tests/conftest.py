import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-partner-referral-suite-0123456789")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from decimal import Decimal

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from partner_api.db.base import Base
from partner_api.middleware.auth import TokenManager
from partner_api.models import Company, EmployeeRole, Offer, Registration
from partner_api.schemas.employee import EmployeeContext
from partner_api.services.referral_codec import encode_direct_link


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # pysqlite transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_company(db_session):
    async def _make(code, parent=None, **kwargs):
        company = Company(
            name=kwargs.pop("name", f"{code} Partners"),
            code=code,
            parent_id=parent.id if parent is not None else None,
            hierarchy_level=parent.hierarchy_level + 1 if parent is not None else 0,
            **kwargs,
        )
        db_session.add(company)
        await db_session.commit()
        return company

    return _make


@pytest.fixture
def make_offer(db_session):
    async def _make(company, link=None, **kwargs):
        values = dict(
            course_id=1,
            name="Certification 2025",
            offer_type="certification",
            total_amount=Decimal("500.00"),
            installments=1,
            installment_frequency=1,
            is_active=True,
            is_inherited=False,
        )
        values.update(kwargs)
        offer = Offer(
            company_id=company.id,
            referral_link=link or encode_direct_link(company.code),
            **values,
        )
        db_session.add(offer)
        await db_session.commit()
        return offer

    return _make


@pytest.fixture
def make_registration(db_session):
    async def _make(offer, company_id=None, status="PENDING"):
        registration = Registration(
            offer_id=offer.id,
            company_id=company_id or offer.company_id,
            referral_link=offer.referral_link,
            applicant_reference="applicant-1",
            status=status,
        )
        db_session.add(registration)
        await db_session.commit()
        return registration

    return _make


def admin_of(company, employee_id=1):
    return EmployeeContext(employee_id=employee_id, company_id=company.id, role=EmployeeRole.ADMINISTRATIVE)


def commercial_of(company, employee_id=2):
    return EmployeeContext(employee_id=employee_id, company_id=company.id, role=EmployeeRole.COMMERCIAL)


@pytest.fixture
def admin():
    return admin_of


@pytest.fixture
def commercial():
    return commercial_of


@pytest.fixture
def auth_headers():
    def _headers(company, role=EmployeeRole.ADMINISTRATIVE, employee_id=1):
        token = TokenManager.create_access_token(employee_id, company.id, role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
async def client(session_factory):
    from partner_api.db.session import get_session
    from partner_api.main import app

    async def _override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
