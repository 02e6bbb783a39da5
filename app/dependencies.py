"""Shared FastAPI dependencies for API routes.

The cache store, request ledger and upstream client are process-wide
instances. They are created lazily, once, and passed explicitly to the
services that use them, so tests can build isolated instances instead.
"""

from functools import lru_cache

from app.config import get_settings
from app.services.cache import CacheStore
from app.services.dedupe import RequestDeduplicator
from app.services.fpl_client import FplApiClient
from app.services.insights import InsightsService


@lru_cache
def get_cache_store() -> CacheStore:
    return CacheStore.from_settings(get_settings())


@lru_cache
def get_deduplicator() -> RequestDeduplicator:
    return RequestDeduplicator()


@lru_cache
def get_fpl_client() -> FplApiClient:
    return FplApiClient(get_cache_store(), get_deduplicator(), get_settings())


@lru_cache
def get_insights_service() -> InsightsService:
    """FastAPI dependency providing the shared insights service.

    Usage:
        @router.get("/endpoint")
        async def endpoint(service: InsightsService = Depends(get_insights_service)):
            ...
    """
    return InsightsService(
        get_fpl_client(),
        get_cache_store(),
        get_deduplicator(),
        get_settings(),
    )


async def close_shared_clients() -> None:
    """Close HTTP clients held by the shared instances, if they were created."""
    if get_fpl_client.cache_info().currsize:
        await get_fpl_client().close()
    if get_cache_store.cache_info().currsize:
        await get_cache_store().close()
