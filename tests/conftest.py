"""
Pytest configuration and fixtures for testing
"""
import httpx
import pytest

from config.settings import Settings
from crud.project_store import InMemoryProjectStore, SqlProjectStore
from database import create_engine, init_db
from main import create_app


def make_settings(tmp_path, **overrides) -> Settings:
    """Settings isolated from the developer's environment"""
    values = {
        "DATABASE_URL": None,
        "REDIS_URL": None,
        "FRONTEND_URL": "http://localhost:3000",
        "environment": "test",
        "RATE_LIMIT_MAX_REQUESTS": 1000,
        "RATE_LIMIT_WINDOW_SECONDS": 60,
        "LOG_DIR": tmp_path / "logs",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory(tmp_path):
    """Build isolated settings with per-test overrides"""
    def factory(**overrides):
        return make_settings(tmp_path, **overrides)
    return factory


@pytest.fixture
def settings(settings_factory):
    return settings_factory()


@pytest.fixture
def memory_store():
    return InMemoryProjectStore()


@pytest.fixture
async def sql_store(tmp_path):
    """
    Fixture that provides a SQLite-backed store in a throwaway file database.
    Tables are created before the test runs and the engine is disposed after.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'projects.db'}")
    await init_db(engine)
    store = SqlProjectStore(engine)
    yield store
    await store.close()


@pytest.fixture(params=["memory", "database"])
async def store(request, tmp_path):
    """Runs a test once per storage backend"""
    if request.param == "memory":
        yield InMemoryProjectStore()
        return
    engine = create_engine(f"sqlite:///{tmp_path / 'projects.db'}")
    await init_db(engine)
    sql_store = SqlProjectStore(engine)
    yield sql_store
    await sql_store.close()


@pytest.fixture
def app(settings, memory_store):
    return create_app(settings, store=memory_store)


@pytest.fixture
async def async_client(app):
    """
    Async HTTP client fixture bound to the app in-process.
    """
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
