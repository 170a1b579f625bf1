"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test settings before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrops.common.constants import UserRole
from hrops.config import settings
from hrops.database import Base, get_db
from hrops.main import create_app

# Import both model modules so the Employee <-> LeaveRequest relationships resolve
import hrops.core_hr.models  # noqa: F401
import hrops.leave.models  # noqa: F401
from hrops.leave.router import get_session_factory

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


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


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )


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
    from hrops.common.rate_limit import limiter

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


def _override_get_session_factory():
    return TestSessionFactory


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_session_factory] = _override_get_session_factory
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
    department: Optional[str] = "Engineering",
    leave_balance: Decimal = Decimal("30"),
    leave_taken: Decimal = Decimal("0"),
    carry_over_leaves: Decimal = Decimal("0"),
    current_year_leaves: Decimal = Decimal("30"),
    last_carry_forward_year: Optional[int] = None,
    reporting_manager_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
) -> dict:
    code = f"CF-{uuid.uuid4().hex[:6].upper()}"
    return dict(
        id=uuid.uuid4(),
        employee_code=code,
        name=name,
        email=f"{code.lower()}@hr-ops.test",
        role=role,
        department=department,
        designation="Engineer",
        reporting_manager_id=reporting_manager_id,
        joining_date=date(2024, 1, 15),
        is_active=is_active,
        total_leave_quota=carry_over_leaves + current_year_leaves,
        leave_balance=leave_balance,
        leave_taken=leave_taken,
        carry_over_leaves=carry_over_leaves,
        current_year_leaves=current_year_leaves,
        last_carry_forward_year=last_carry_forward_year,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **overrides):
    """Insert an employee built by :func:`_make_employee` and return it."""
    from hrops.core_hr.models import Employee

    emp = Employee(**_make_employee(**overrides))
    db.add(emp)
    await db.flush()
    return emp


@pytest.fixture
async def test_employee(db):
    """Active rank-and-file employee with a 30-day balance."""
    return await _seed_employee(db, name="Asha Employee")


@pytest.fixture
async def test_manager(db):
    """Manager in the same department as ``test_employee``."""
    return await _seed_employee(db, name="Mira Manager", role=UserRole.manager)


@pytest.fixture
async def test_admin(db):
    return await _seed_employee(
        db, name="Arun Admin", role=UserRole.admin, department="People Ops",
    )


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(employee_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id)}"}
