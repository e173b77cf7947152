"""
Tests for the sliding-window rate limiter
"""
import httpx
import pytest
from fakeredis import aioredis as fake_aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from crud.project_store import InMemoryProjectStore
import main
from main import create_app
from utils.rate_limit import SlidingWindowLimiter, create_redis_client


def test_window_admits_up_to_limit():
    limiter = SlidingWindowLimiter(max_requests=3, window_seconds=10)

    assert [limiter.allow("1.2.3.4", now=100.0 + i) for i in range(4)] == [True, True, True, False]


def test_window_slides():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    limiter.allow("ip", now=0.0)
    limiter.allow("ip", now=5.0)

    assert limiter.allow("ip", now=9.0) is False
    # The hit at t=0 has left the window
    assert limiter.allow("ip", now=10.5) is True
    assert limiter.allow("ip", now=11.0) is False


def test_window_is_per_client():
    limiter = SlidingWindowLimiter(max_requests=1, window_seconds=60)

    assert limiter.allow("a", now=1.0) is True
    assert limiter.allow("b", now=1.0) is True
    assert limiter.allow("a", now=2.0) is False


def test_emptied_window_drops_client_key():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    limiter.allow("a", now=0.0)
    limiter.allow("b", now=0.0)

    # "a" comes back after its window passed; the old entry is replaced
    assert limiter.allow("a", now=20.0) is True
    assert list(limiter._hits["a"]) == [20.0]


def test_sweep_forgets_idle_clients():
    limiter = SlidingWindowLimiter(max_requests=5, window_seconds=10)
    for i in range(50):
        limiter.allow(f"10.0.0.{i}", now=1.0)
    limiter.allow("recent", now=15.0)

    assert len(limiter._hits) == 51
    assert limiter.sweep(now=15.0) == 50
    assert list(limiter._hits) == ["recent"]


def test_map_shrinks_on_periodic_sweep():
    limiter = SlidingWindowLimiter(max_requests=1, window_seconds=10, sweep_every=10)
    for i in range(9):
        limiter.allow(f"spoofed-{i}", now=0.0)
    assert len(limiter._hits) == 9

    # The tenth call triggers a sweep after every earlier key has gone idle
    assert limiter.allow("late", now=30.0) is True
    assert list(limiter._hits) == ["late"]


def test_redis_client_not_created_without_url():
    assert create_redis_client(None) is None


@pytest.mark.asyncio
async def test_middleware_returns_429_after_limit(settings_factory):
    app = create_app(settings_factory(RATE_LIMIT_MAX_REQUESTS=3), store=InMemoryProjectStore())
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        statuses = [(await client.get("/api/projects")).status_code for _ in range(3)]
        limited = await client.get("/api/projects")

    assert statuses == [200, 200, 200]
    assert limited.status_code == 429
    assert limited.json() == {"error": "Too many requests from this IP, please try again later."}


@pytest.mark.asyncio
async def test_forwarded_for_addresses_are_counted_separately(settings_factory):
    app = create_app(
        settings_factory(RATE_LIMIT_MAX_REQUESTS=1, TRUST_PROXY=True),
        store=InMemoryProjectStore(),
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.get("/api/projects", headers={"X-Forwarded-For": "10.0.0.1"})
        second = await client.get("/api/projects", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"})
        repeat = await client.get("/api/projects", headers={"X-Forwarded-For": "10.0.0.1"})

    assert first.status_code == 200
    assert second.status_code == 200
    assert repeat.status_code == 429


@pytest.mark.asyncio
async def test_forwarded_for_ignored_by_default(settings_factory):
    app = create_app(settings_factory(RATE_LIMIT_MAX_REQUESTS=1), store=InMemoryProjectStore())
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        statuses = [
            (await client.get("/api/projects", headers={"X-Forwarded-For": f"10.9.9.{i}"})).status_code
            for i in range(5)
        ]

    assert statuses == [200, 429, 429, 429, 429]


@pytest.mark.asyncio
async def test_paths_outside_api_are_not_limited(settings_factory):
    app = create_app(settings_factory(RATE_LIMIT_MAX_REQUESTS=1), store=InMemoryProjectStore())
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        statuses = [(await client.get("/elsewhere")).status_code for _ in range(3)]

    assert statuses == [404, 404, 404]


@pytest.fixture
async def fake_redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


def app_with_redis(settings, redis_client, monkeypatch):
    monkeypatch.setattr(main, "create_redis_client", lambda url: redis_client)
    return create_app(settings, store=InMemoryProjectStore())


@pytest.mark.asyncio
async def test_redis_window_limits_and_drops_rejected_hits(settings_factory, fake_redis, monkeypatch):
    settings = settings_factory(RATE_LIMIT_MAX_REQUESTS=2, REDIS_URL="redis://fake:6379/0")
    app = app_with_redis(settings, fake_redis, monkeypatch)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        statuses = [(await client.get("/api/projects")).status_code for _ in range(4)]

    assert statuses == [200, 200, 429, 429]
    # Only admitted requests stay in the sorted set
    assert await fake_redis.zcard("rate_limit:127.0.0.1") == 2
    assert await fake_redis.ttl("rate_limit:127.0.0.1") > 0


@pytest.mark.asyncio
async def test_redis_window_is_shared_between_apps(settings_factory, fake_redis, monkeypatch):
    settings = settings_factory(RATE_LIMIT_MAX_REQUESTS=1, REDIS_URL="redis://fake:6379/0")
    first_app = app_with_redis(settings, fake_redis, monkeypatch)
    second_app = app_with_redis(settings, fake_redis, monkeypatch)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=first_app), base_url="http://test") as client:
        first = await client.get("/api/projects")
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=second_app), base_url="http://test") as client:
        second = await client.get("/api/projects")

    assert first.status_code == 200
    assert second.status_code == 429


class BrokenPipeline:
    """Queues commands like a redis pipeline but fails on execute"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            return self
        return queue

    async def execute(self):
        raise RedisConnectionError("Connection refused")


class BrokenRedis:
    def pipeline(self, transaction=True):
        return BrokenPipeline()


@pytest.mark.asyncio
async def test_redis_failure_falls_back_to_memory(settings_factory, monkeypatch, caplog):
    settings = settings_factory(RATE_LIMIT_MAX_REQUESTS=1, REDIS_URL="redis://fake:6379/0")
    app = app_with_redis(settings, BrokenRedis(), monkeypatch)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.get("/api/projects")
        limited = await client.get("/api/projects")

    assert first.status_code == 200
    assert limited.status_code == 429
    assert "Falling back to in-memory" in caplog.text
