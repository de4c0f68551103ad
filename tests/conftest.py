"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
The engine emits its own BEGIN so SAVEPOINTs (ledger dedup, per-employee
batch isolation) behave as they do on PostgreSQL. All sessions share one
in-memory connection: commit the ``db`` session before calling the API.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from hrms.attendance.models import AttendanceLog, Holiday, RestrictedHoliday
from hrms.common.constants import LeaveType, LedgerAction, UserRole
from hrms.config import settings
from hrms.core_hr.models import Department, Employee, RoleDefinition
from hrms.database import Base, get_db
from hrms.ledger.service import LedgerService
from hrms.main import create_app
from hrms.policy.models import LeavePolicy

# Import ALL model modules so SQLAlchemy can resolve cross-module foreign keys
import hrms.common.audit  # noqa: F401
import hrms.compoff.models  # noqa: F401
import hrms.leave.models  # noqa: F401
import hrms.ledger.models  # noqa: F401
import hrms.wfh.models  # noqa: F401


# ── SQLite compat: compile PG-specific types ────────────────────────

@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _on_connect(dbapi_conn, connection_record):
    """Register PG functions and take over transaction control from the driver."""
    dbapi_conn.isolation_level = None
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
    )


@event.listens_for(engine.sync_engine, "begin")
def _on_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hrms.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    name: str = "Test User",
    role: UserRole = UserRole.employee,
    role_rank: int = 5,
    reporting_manager_id: Optional[uuid.UUID] = None,
    department_id: Optional[uuid.UUID] = None,
    join_date: Optional[date] = date(2024, 1, 15),
    active: bool = True,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        emp_code=f"CF-{uuid.uuid4().hex[:6].upper()}",
        name=name,
        role=role,
        role_rank=role_rank,
        reporting_manager_id=reporting_manager_id,
        department_id=department_id,
        join_date=join_date,
        active=active,
        created_at=datetime.now(timezone.utc),
    )


async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def seed_department(db: AsyncSession, name: str = "Engineering", code: str = "ENG") -> Department:
    dept = Department(
        id=uuid.uuid4(),
        name=name,
        code=code,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db.add(dept)
    await db.flush()
    return dept


async def seed_role(
    db: AsyncSession,
    name: str,
    role_rank: int,
    *,
    wfh_enabled: bool = False,
) -> RoleDefinition:
    role = RoleDefinition(
        id=uuid.uuid4(),
        name=name,
        role_rank=role_rank,
        wfh_enabled=wfh_enabled,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db.add(role)
    await db.flush()
    return role


async def seed_policy(db: AsyncSession, year: int = 2026, **overrides) -> LeavePolicy:
    values = dict(
        id=uuid.uuid4(),
        year=year,
        annual_pl=7,
        annual_cl=5,
        annual_sl=6,
        annual_rh=1,
        monthly_credit_pl=None,
        monthly_credit_cl=None,
        monthly_credit_sl=Decimal("0"),
        pl_eligibility_months=6,
        backdated_max_days=7,
        carry_forward_pl_max=4,
        sandwich_enabled=True,
        allow_hr_override=True,
        wfh_max_days=12,
        wfh_day_value=Decimal("0.5"),
        revision=1,
    )
    values.update(overrides)
    policy = LeavePolicy(**values)
    db.add(policy)
    await db.flush()
    return policy


async def seed_holiday(db: AsyncSession, day: date, name: str = "Holiday") -> Holiday:
    holiday = Holiday(id=uuid.uuid4(), year=day.year, name=name, date=day, active=True)
    db.add(holiday)
    await db.flush()
    return holiday


async def seed_restricted_holiday(db: AsyncSession, day: date, name: str = "Optional Holiday") -> RestrictedHoliday:
    rh = RestrictedHoliday(id=uuid.uuid4(), year=day.year, name=name, date=day, active=True)
    db.add(rh)
    await db.flush()
    return rh


async def seed_attendance(db: AsyncSession, employee_id: uuid.UUID, day: date) -> AttendanceLog:
    log = AttendanceLog(id=uuid.uuid4(), employee_id=employee_id, punch_date=day, source="BIOMETRIC")
    db.add(log)
    await db.flush()
    return log


async def credit_leave(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    days: str,
    *,
    year: int = 2026,
):
    """Post an annual grant so the employee has *days* of *leave_type*."""
    return await LedgerService.post_transaction(
        db,
        employee_id=employee_id,
        year=year,
        leave_type=leave_type,
        delta_days=Decimal(days),
        action=LedgerAction.accrue_annual,
        remarks="Test grant",
    )


# ── Organisation fixture ────────────────────────────────────────────

@pytest.fixture
async def org(db):
    """MD (rank 1) → HR (rank 3), Manager (rank 4) → Employee (rank 5).

    Also seeds the 2026 policy with defaults.
    """
    dept = await seed_department(db)
    md = await seed_employee(db, name="Meera MD", role=UserRole.md, role_rank=1)
    hr = await seed_employee(
        db, name="Harish HR", role=UserRole.hr, role_rank=3, reporting_manager_id=md.id,
    )
    manager = await seed_employee(
        db, name="Manoj Manager", role=UserRole.manager, role_rank=4,
        reporting_manager_id=md.id, department_id=dept.id,
    )
    employee = await seed_employee(
        db, name="Esha Employee", role=UserRole.employee, role_rank=5,
        reporting_manager_id=manager.id, department_id=dept.id,
    )
    policy = await seed_policy(db, 2026)
    return dict(dept=dept, md=md, hr=hr, manager=manager, employee=employee, policy=policy)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(employee: Employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee.id)}"}
