"""Shared test configuration and fixtures.

Each test gets its own in-memory SQLite database (aiosqlite + StaticPool),
so tests are fully isolated and need no running PostgreSQL.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import recipe_forge.models  # noqa: F401  (registers every table on Base.metadata)
from recipe_forge.auth.jwt import create_token_pair
from recipe_forge.auth.passwords import hash_password
from recipe_forge.database import Base, get_db
from recipe_forge.entitlements.features import FeatureKey
from recipe_forge.entitlements.ledger import UsageLedger
from recipe_forge.entitlements.plans import get_plan_by_name
from recipe_forge.entitlements.store import CounterState
from recipe_forge.main import app
from recipe_forge.models.user import User
from recipe_forge.services.subscription_service import get_or_create_subscription, subscribe

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def create_user(
    db_session: AsyncSession,
    role: str = "MEMBER",
    plan: str = "free",
    name: str = "Test User",
) -> tuple[User, dict[str, str]]:
    """Create a user subscribed to ``plan`` and return (user, auth_headers)."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=f"{role.lower()}-{unique}@test.com",
        hashed_password=hash_password("testpass123"),
        name=name,
        is_active=True,
        role=role,
    )
    db_session.add(user)
    await db_session.flush()

    await get_or_create_subscription(db_session, user)
    if plan != "free":
        target = await get_plan_by_name(db_session, plan)
        await subscribe(db_session, user, target.id)
    await db_session.refresh(user)

    tokens = create_token_pair(str(user.id))
    return user, {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest_asyncio.fixture
async def member(db_session: AsyncSession) -> tuple[User, dict[str, str]]:
    return await create_user(db_session, name="Member")


@pytest_asyncio.fixture
async def test_user(member) -> User:
    return member[0]


@pytest_asyncio.fixture
async def auth_headers(member) -> dict[str, str]:
    return member[1]


@pytest_asyncio.fixture
async def other_member(db_session: AsyncSession) -> tuple[User, dict[str, str]]:
    return await create_user(db_session, name="Other Member")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> tuple[User, dict[str, str]]:
    return await create_user(db_session, role="ADMIN", name="Admin")


@pytest_asyncio.fixture
async def guest(db_session: AsyncSession) -> tuple[User, dict[str, str]]:
    return await create_user(db_session, role="GUEST", name="Guest")


@pytest_asyncio.fixture
async def pro_member(db_session: AsyncSession) -> tuple[User, dict[str, str]]:
    return await create_user(db_session, plan="pro", name="Pro Member")


@pytest_asyncio.fixture
async def premium_member(db_session: AsyncSession) -> tuple[User, dict[str, str]]:
    return await create_user(db_session, plan="premium", name="Premium Member")


# ---------------------------------------------------------------------------
# In-memory usage store
# ---------------------------------------------------------------------------


class MemoryUsageStore:
    """``UsageStore`` kept in dicts.

    Each mutation yields to the event loop before its atomic section so
    concurrent callers interleave the way separate requests would.
    """

    def __init__(self) -> None:
        self.counters: dict[tuple[uuid.UUID, FeatureKey], CounterState] = {}
        self.cycles: dict[uuid.UUID, tuple[datetime, datetime]] = {}
        self.writes = 0

    async def load_ledger(self, subscription) -> UsageLedger:
        rows = [
            SimpleNamespace(feature=feature.value, remaining=state.remaining)
            for (sub_id, feature), state in self.counters.items()
            if sub_id == subscription.id
        ]
        return UsageLedger.from_counters(rows, period_start=subscription.billing_cycle_start)

    async def read_counter(self, subscription_id, feature):
        return self.counters.get((subscription_id, feature))

    async def decrement(self, subscription_id, feature, period_start) -> bool:
        await asyncio.sleep(0)
        state = self.counters.get((subscription_id, feature))
        if state is None or state.period_start != period_start or state.remaining <= 0:
            return False
        self.counters[(subscription_id, feature)] = CounterState(state.remaining - 1, period_start)
        self.writes += 1
        return True

    async def write_ledger(self, subscription, ledger: UsageLedger) -> None:
        period_start = ledger.period_start or subscription.billing_cycle_start
        for feature, remaining in ledger.remaining.items():
            self.counters[(subscription.id, feature)] = CounterState(remaining, period_start)
        self.cycles.setdefault(subscription.id, (subscription.billing_cycle_start, subscription.next_billing_date))
        self.writes += 1

    async def start_cycle(self, subscription, observed_next_billing, cycle_start, next_billing, ledger) -> bool:
        await asyncio.sleep(0)
        stored = self.cycles.get(subscription.id, (subscription.billing_cycle_start, observed_next_billing))
        if stored[1] != observed_next_billing:
            # Mirror the SQL store's refresh of the cycle columns
            subscription.billing_cycle_start, subscription.next_billing_date = stored
            return False
        self.cycles[subscription.id] = (cycle_start, next_billing)
        subscription.billing_cycle_start = cycle_start
        subscription.next_billing_date = next_billing
        await self.write_ledger(subscription, ledger)
        return True


@pytest.fixture
def memory_store() -> MemoryUsageStore:
    return MemoryUsageStore()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory fixture: ``await make_user(role=..., plan=...)``."""

    async def factory(role: str = "MEMBER", plan: str = "free", name: str = "Test User"):
        return await create_user(db_session, role=role, plan=plan, name=name)

    return factory
