"""Service layer for business logic."""

from app.services.cache import CacheStore
from app.services.dedupe import RequestDeduplicator
from app.services.fpl_client import FplApiClient
from app.services.insights import InsightsService

__all__ = ["CacheStore", "FplApiClient", "InsightsService", "RequestDeduplicator"]
