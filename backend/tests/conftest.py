"""
Pytest configuration and fixtures for Little Bell tests.

Every test gets its own SQLite file under pytest's tmp_path.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from little_bell.config import Settings
from little_bell.main import create_app
from little_bell.services import Aggregator, EventRecorder
from little_bell.store import Store

BASE_URL = "http://track.test"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway store file."""
    return Settings(
        database_url=f"sqlite:{tmp_path / 'data' / 'tracking.db'}",
        base_url=BASE_URL,
        recent_events_limit=50,
    )


@pytest.fixture
async def store(settings):
    """An opened store, closed after the test."""
    store = Store.from_settings(settings)
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def recorder(store) -> EventRecorder:
    return EventRecorder(store)


@pytest.fixture
def aggregator(store) -> Aggregator:
    return Aggregator(store)


@pytest.fixture
async def client(settings, store):
    """HTTP client bound to an app sharing the test store."""
    app = create_app(settings=settings, store=store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE_URL) as ac:
        yield ac
