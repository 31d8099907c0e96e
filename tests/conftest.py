"""Test configuration and fixtures.

Tests run against ``settings.test_database_url``: an in-memory SQLite database
by default (one connection shared through StaticPool), or a Postgres URL when
TEST_DATABASE_URL points at one. Tables are created and dropped per test.
The realtime bus is the in-memory backend and rate limiting is disabled,
except in the tests that exercise them directly.
"""

import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from campusgig.auth.rate_limit import check_rate_limit
from campusgig.config import settings
from campusgig.database import Base, build_engine, get_db
from campusgig.main import app
from campusgig.models.conversation import Conversation, Message  # noqa: F401
from campusgig.models.job import Job, JobStatus
from campusgig.models.profile import Profile
from campusgig.models.rating import Rating  # noqa: F401
from campusgig.realtime import InMemoryEventBus, get_event_bus
from campusgig.schemas.job import JobCreate
from campusgig.services import job as job_service


@pytest.fixture(autouse=True)
def _isolate_settings() -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    test_engine = build_engine(settings.test_database_url)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session = AsyncSession(bind=engine, expire_on_commit=False)
    yield session
    await session.close()


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, bus: InMemoryEventBus
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with overridden DB, event bus and rate limit dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def no_rate_limit() -> None:
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[check_rate_limit] = no_rate_limit

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_headers(user_id: uuid.UUID, email: str | None = None) -> dict[str, str]:
    """Identity headers as forwarded by the gateway."""
    headers = {"X-User-Id": str(user_id)}
    if email:
        headers["X-User-Email"] = email
    return headers


def make_job_data(**overrides: object) -> dict:
    data = {
        "title": "Pick up my parcel",
        "description": "From the post office to Hostel B",
        "price": 500,
        "urgency": "Today",
        "location": "Main Gate",
        "category": "Errands",
    }
    data.update(overrides)
    return data


async def make_profile(
    db: AsyncSession,
    full_name: str | None = None,
    email: str | None = None,
) -> Profile:
    user_id = uuid.uuid4()
    profile = Profile(
        user_id=user_id,
        full_name=full_name,
        email=email or f"u{str(user_id.int)[:8]}@students.example.edu",
    )
    db.add(profile)
    await db.commit()
    return profile


async def make_job(db: AsyncSession, owner: Profile, **overrides: object) -> Job:
    return await job_service.create_job(db, owner.user_id, JobCreate(**make_job_data(**overrides)))


async def make_assigned_job(
    db: AsyncSession, bus: InMemoryEventBus, owner: Profile, worker: Profile, **overrides: object
) -> Job:
    job = await make_job(db, owner, **overrides)
    job = await job_service.assign_worker(db, bus, job.id, worker.user_id, owner.user_id)
    assert job.status == JobStatus.IN_PROGRESS
    return job


async def make_completed_job(
    db: AsyncSession, bus: InMemoryEventBus, owner: Profile, worker: Profile
) -> Job:
    job = await make_assigned_job(db, bus, owner, worker)
    return await job_service.set_job_status(db, bus, job.id, JobStatus.COMPLETED, owner.user_id)
