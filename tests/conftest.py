import os
from collections.abc import AsyncGenerator, Generator
from datetime import UTC, datetime, timedelta

# Tests run against in-memory stores and header-based tenants; set before the
# settings singleton is created on first import.
os.environ.setdefault("JOB_STORE", "memory")
os.environ.setdefault("AUTH_MODE", "dev")
os.environ.setdefault("DEBUG", "false")

import pytest
from fastapi.testclient import TestClient

from jobengine.config.settings import Settings
from jobengine.infra.database import Database
from jobengine.v1.core.registries import HandlerRegistry
from jobengine.v1.core.security import TenantContext
from jobengine.v1.jobs.dispatcher import JobDispatcher
from jobengine.v1.jobs.service import JobService
from jobengine.v1.jobs.store import InMemoryJobStore, JobStore, SqlAlchemyJobStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def sqlite_database(tmp_path) -> Database:
    """Database over a throwaway SQLite file."""
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        debug=False,
    )
    return Database(settings)


@pytest.fixture
def memory_store(clock) -> InMemoryJobStore:
    return InMemoryJobStore(clock=clock)


@pytest.fixture(params=["memory", "sql"])
async def store(request, clock, tmp_path) -> AsyncGenerator[JobStore, None]:
    """Every store implementation, so the same contract is checked on each."""
    if request.param == "memory":
        yield InMemoryJobStore(clock=clock)
        return

    database = sqlite_database(tmp_path)
    await database.create_all()

    yield SqlAlchemyJobStore(database.SessionLocal, clock=clock)

    await database.close()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def dispatcher(store, registry, clock) -> JobDispatcher:
    return JobDispatcher(store, registry, clock=clock)


@pytest.fixture
def service(store, registry, dispatcher, clock) -> JobService:
    return JobService(store, registry, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def memory_service(memory_store, clock) -> JobService:
    registry = HandlerRegistry()
    dispatcher = JobDispatcher(memory_store, registry, clock=clock)
    return JobService(memory_store, registry, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(tenant_id="tenant-a", user_id="user-1", roles=["admin"])


@pytest.fixture
def other_tenant() -> TenantContext:
    return TenantContext(tenant_id="tenant-b", user_id="user-2", roles=["admin"])


@pytest.fixture
def app(memory_service):
    """FastAPI application wired to an in-memory job service."""
    from jobengine.config.settings import settings
    from jobengine.main import create_app
    from jobengine.v1.jobs.registry_init import register_job_handlers

    register_job_handlers(memory_service, settings)
    return create_app(job_service=memory_service)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def tenant_headers() -> dict[str, str]:
    return {"X-Tenant-ID": "tenant-a", "X-User-ID": "user-1"}
