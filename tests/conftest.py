"""Shared pytest fixtures for backend tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.dependencies import get_insights_service
from app.main import app
from app.services.cache import CacheStore
from app.services.dedupe import RequestDeduplicator
from app.services.fpl_client import FplApiClient
from app.services.insights import InsightsService

START_TIME = 1_725_000_000.0


class FakeClock:
    """Controllable seconds-since-epoch clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment: memory cache, no retry delays."""
    return Settings(
        _env_file=None,
        kv_rest_url=None,
        kv_rest_token=None,
        upstream_backoff_seconds=0,
        upstream_timeout_seconds=5.0,
    )


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    """Memory-only cache driven by the fake clock."""
    return CacheStore(clock=clock)


@pytest.fixture
def deduplicator() -> RequestDeduplicator:
    return RequestDeduplicator()


@pytest.fixture
async def fpl_client(cache, deduplicator, settings):
    """FPL client over the shared test cache; close it after the test."""
    client = FplApiClient(cache, deduplicator, settings)
    yield client
    await client.close()


@pytest.fixture
def service(fpl_client, cache, deduplicator, settings) -> InsightsService:
    return InsightsService(fpl_client, cache, deduplicator, settings)


@pytest.fixture
async def async_client(service: InsightsService):
    """Async HTTP client for testing the FastAPI app against the test service."""
    app.dependency_overrides[get_insights_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
