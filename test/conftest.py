"""
Pytest configuration and fixtures for CRM search tests
"""

import os
import sys
import tempfile
from collections.abc import AsyncGenerator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120


# Tests run against a throwaway SQLite file unless TEST_DATABASE_URL points elsewhere
def get_test_database_url():
    """Get test database URL from environment or use a temporary SQLite file"""
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url
    test_dir = tempfile.mkdtemp(prefix="crm_search_test_")
    return f"sqlite+aiosqlite:///{os.path.join(test_dir, 'crm_search_test.db')}"  # noqa: PTH118


TEST_DATABASE_URL = get_test_database_url()
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

# Import Base first, before importing the app
from crm_search import models  # noqa: E402, F401
from crm_search.database import Base  # noqa: E402

# NullPool: TestClient drives the app on its own event loop, so connections must not be shared
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

# Now import and patch the app's database components
import crm_search.database as database_module  # noqa: E402

database_module.engine = test_engine
database_module.AsyncSessionLocal = TestSessionLocal

from crm_search.main import app  # noqa: E402
from crm_search.services.entity_store import build_entity_stores  # noqa: E402
from crm_search.services.facets import FacetAggregator  # noqa: E402
from crm_search.services.history_service import SearchHistoryStore  # noqa: E402
from crm_search.services.search_service import SearchService, get_search_service  # noqa: E402

TENANT_ID = "tenant-acme"
OTHER_TENANT_ID = "tenant-globex"
USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"


@pytest.fixture(scope="function")
async def setup_test_database():
    """
    Create a fresh schema for each test function that needs it.
    Tests should depend on this fixture (or fixtures that depend on it like test_db).
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def test_db(setup_test_database) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for seeding test data."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestSessionLocal


@pytest.fixture
def entity_stores():
    return build_entity_stores(TestSessionLocal)


@pytest.fixture
def history_store(setup_test_database):
    return SearchHistoryStore(TestSessionLocal)


def make_search_service(**overrides) -> SearchService:
    """Search service over the test database with facet caching off."""
    stores = overrides.pop("stores", None) or build_entity_stores(TestSessionLocal)
    options = {
        "stores": stores,
        "history": SearchHistoryStore(TestSessionLocal),
        "facets": FacetAggregator(stores, cache_ttl=0),
    }
    options.update(overrides)
    return SearchService(**options)


@pytest.fixture
async def search_service(setup_test_database):
    """Search service with history recording enabled; pending writes are drained on teardown."""
    service = make_search_service(history_enabled=True)
    yield service
    await service.drain_background_tasks()


@pytest.fixture
def client(setup_test_database):
    """
    Test client for the FastAPI application.

    History recording is off: every TestClient request runs on its own event
    loop, so background writes would not outlive the request.
    """
    service = make_search_service(history_enabled=False)
    app.dependency_overrides[get_search_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_headers() -> dict:
    """Identity headers the upstream gateway would forward"""
    return {"X-Tenant-ID": TENANT_ID, "X-User-ID": USER_ID}


@pytest.fixture
def other_user_headers() -> dict:
    return {"X-Tenant-ID": TENANT_ID, "X-User-ID": OTHER_USER_ID}
