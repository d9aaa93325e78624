"""Shared test fixtures — async DB, client, principals, engine fakes.

Reusable across all test modules (ledger, overlap, workflow, store, API).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hr_leave.auth.dependencies import EMPLOYEE_HEADER, MANAGER_HEADER, ROLE_HEADER
from hr_leave.auth.schemas import Principal
from hr_leave.common.constants import UserRole
from hr_leave.common.exceptions import StorageFailure
from hr_leave.database import Base
from hr_leave.leave.records import BalanceRecord, LeaveRecord
from hr_leave.leave.service import LeaveWorkflowService
from hr_leave.leave.store import SqlAlchemyLeaveStore
from hr_leave.main import create_app
from hr_leave.notifications.schemas import LeaveEvent

# Import ALL model modules so their tables are registered on Base
import hr_leave.leave.models  # noqa: F401
import hr_leave.notifications.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


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


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
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
    from hr_leave.common.rate_limit import limiter
    limiter.reset()
    yield


# ── Engine collaborators (in-memory fakes) ──────────────────────────


class MemoryLeaveStore:
    """``LeaveStore`` keeping rows in dicts. Set ``fail`` to simulate an outage."""

    def __init__(self) -> None:
        self.requests: dict[uuid.UUID, LeaveRecord] = {}
        self.balances: dict[tuple, BalanceRecord] = {}
        self.saves = 0
        self.fail = False

    async def save(
        self, request: LeaveRecord, balance: Optional[BalanceRecord] = None,
    ) -> None:
        # Yield so concurrent callers interleave at the persistence boundary
        await asyncio.sleep(0)
        if self.fail:
            raise StorageFailure("Simulated storage outage.")
        self.saves += 1
        self.requests[request.id] = request.model_copy(deep=True)
        if balance is not None:
            self.balances[balance.key] = balance.model_copy()

    async def load_requests(self) -> list[LeaveRecord]:
        return sorted(self.requests.values(), key=lambda r: r.created_at)

    async def load_balances(self) -> list[BalanceRecord]:
        return list(self.balances.values())


class RecordingNotifier:
    """``NotificationDispatcher`` that records events instead of delivering."""

    def __init__(self, *, broken: bool = False) -> None:
        self.events: list[LeaveEvent] = []
        self.broken = broken

    def dispatch(self, event: LeaveEvent) -> None:
        if self.broken:
            raise RuntimeError("notification transport down")
        self.events.append(event)

    def of_type(self, event_type) -> list[LeaveEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def store() -> MemoryLeaveStore:
    return MemoryLeaveStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store, notifier) -> LeaveWorkflowService:
    return LeaveWorkflowService(store, notifier)


@pytest.fixture
def sql_store() -> SqlAlchemyLeaveStore:
    return SqlAlchemyLeaveStore(TestSessionFactory)


# ── Principals ──────────────────────────────────────────────────────


def make_manager() -> Principal:
    return Principal(employee_id=uuid.uuid4(), role=UserRole.manager)


def make_employee(manager: Optional[Principal] = None) -> Principal:
    return Principal(
        employee_id=uuid.uuid4(),
        role=UserRole.employee,
        manager_id=manager.employee_id if manager else None,
    )


def make_hr() -> Principal:
    return Principal(employee_id=uuid.uuid4(), role=UserRole.hr_admin)


@pytest.fixture
def manager() -> Principal:
    return make_manager()


@pytest.fixture
def employee(manager) -> Principal:
    return make_employee(manager)


@pytest.fixture
def hr() -> Principal:
    return make_hr()


def auth_headers(principal: Principal) -> dict[str, str]:
    """Gateway identity headers for ``principal``."""
    headers = {
        EMPLOYEE_HEADER: str(principal.employee_id),
        ROLE_HEADER: principal.role.value,
    }
    if principal.manager_id is not None:
        headers[MANAGER_HEADER] = str(principal.manager_id)
    return headers


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(sql_store, notifier):
    """Create a fresh app instance around a SQLite-backed engine."""
    application = create_app(service=LeaveWorkflowService(sql_store, notifier))
    yield application


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
