"""
Pytest Configuration and Shared Fixtures

In-memory database, event bus and fake collaborators for all test modules.
"""

from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from brandlens.config import Settings
from brandlens.services.event_bus import LocalEventBus
from brandlens.services.job_engine import JobEngine
from brandlens.services.store import Store
from brandlens.utils.database import Database

from fakes import FakeAnswerer


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Settings with fast retries and no external keys"""
    return Settings(
        LLM_MAX_RETRIES=2,
        LLM_RETRY_DELAY=0,
        JOB_PHASE_TIMEOUT=2,
        SERPER_API_KEY=None,
        ALERT_WEBHOOK_URL=None,
        DEFAULT_ENGINES="ChatGPT,Perplexity",
    )


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def events() -> LocalEventBus:
    return LocalEventBus()


@pytest_asyncio.fixture
async def database():
    """Fresh in-memory SQLite database per test"""
    db = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.open()
    await db.create_all()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database, events):
    async with database.session() as session:
        yield Store(session, events)


@pytest_asyncio.fixture
async def prompt(store, owner_id):
    """Tracked prompt for Acme against two competitors"""
    created = await store.create_prompt(
        owner_id,
        text="What is the best project management tool?",
        brand_name="Acme",
        brand_domain="acme.io",
        competitors=["Asana", "Trello"],
    )
    await store.commit()
    return created


@pytest.fixture
def make_engine(store, settings):
    """Build a JobEngine over the test store"""
    def _make(answerer=None, search=None) -> JobEngine:
        return JobEngine(store, answerer or FakeAnswerer(), search=search, settings=settings)
    return _make
