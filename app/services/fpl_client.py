"""FPL upstream client with retry, validation and stale-while-revalidate caching."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Generic, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from app.config import Settings, get_settings
from app.schemas.insights import SourceStatus
from app.schemas.upstream import (
    BOOTSTRAP_ADAPTER,
    ELEMENT_SUMMARY_ADAPTER,
    FIXTURES_ADAPTER,
    FplBootstrapStatic,
    FplElementSummary,
    FplEvent,
    FplFixture,
)
from app.services.cache import CacheKeys, CacheResult, CacheStore, to_iso
from app.services.dedupe import RequestDeduplicator

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_AGENT = "ApexPL/1.0"

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Failures that end a fetch once retries are exhausted
FETCH_ERRORS = (httpx.HTTPError, asyncio.TimeoutError, ValueError)

MATCHDAY_LEAD = timedelta(hours=2)


class UpstreamUnavailableError(Exception):
    """Upstream fetch failed and no cached copy exists."""

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"Upstream unavailable for {key}: {type(cause).__name__}: {cause}")
        self.key = key
        self.cause = cause


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an error should trigger a retry."""
    if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exception, asyncio.TimeoutError):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRYABLE_STATUS_CODES
    # Malformed JSON body or a payload that fails validation (ValidationError)
    return isinstance(exception, ValueError)


@dataclass(slots=True)
class ProxyResult(Generic[T]):
    """Upstream data with its provenance."""

    data: T
    last_updated: str
    source_status: SourceStatus


def get_current_gameweek(bootstrap: FplBootstrapStatic) -> FplEvent | None:
    """The event flagged current, else the one flagged next."""
    for event in bootstrap.events:
        if event.is_current:
            return event
    for event in bootstrap.events:
        if event.is_next:
            return event
    return None


def _parse_deadline(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_matchday(bootstrap: FplBootstrapStatic, now: datetime | None = None) -> bool:
    """True from 2 hours before the current deadline until the event finishes."""
    current = get_current_gameweek(bootstrap)
    if current is None or current.finished:
        return False
    deadline = _parse_deadline(current.deadline_time)
    if deadline is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now >= deadline - MATCHDAY_LEAD


class FplApiClient:
    """
    FPL API client backed by the shared cache and request ledger.

    Every resource goes through the same flow:
    - fresh cache hit: returned as-is
    - stale cache hit: returned immediately, refreshed in the background
    - miss: fetched once per key (concurrent callers share the fetch),
      validated, cached and returned

    Each physical request has a hard timeout and is retried with linear
    backoff on timeouts, network errors, 429/5xx and invalid payloads.
    """

    def __init__(
        self,
        cache: CacheStore,
        deduplicator: RequestDeduplicator,
        settings: Settings | None = None,
    ):
        """
        Initialize the client.

        Args:
            cache: Shared cache store
            deduplicator: Shared in-flight request ledger
            settings: Application settings (defaults to get_settings())
        """
        self.settings = settings or get_settings()
        self.cache = cache
        self.deduplicator = deduplicator
        self.keys = CacheKeys(self.settings.cache_version)
        self.base_url = self.settings.fpl_api_base_url.rstrip("/")
        self._lock = asyncio.Lock()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy initialization, coroutine-safe)."""
        if self._client is None:
            async with self._lock:
                if self._client is None:  # Double-check after acquiring lock
                    self._client = httpx.AsyncClient(
                        timeout=self.settings.upstream_timeout_seconds,
                        headers={"User-Agent": USER_AGENT},
                    )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources (coroutine-safe)."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self) -> "FplApiClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context manager and close client."""
        await self.close()

    # =========================================================================
    # Physical requests
    # =========================================================================

    async def _request(self, url: str, adapter: TypeAdapter[T]) -> T:
        """One GET with a hard timeout, status check and validation."""
        client = await self._get_client()
        response = await asyncio.wait_for(
            client.get(url),
            timeout=self.settings.upstream_timeout_seconds,
        )
        response.raise_for_status()
        return adapter.validate_python(response.json())

    async def _get(self, url: str, adapter: TypeAdapter[T]) -> T:
        """Make a validated GET request with retries."""
        backoff = self.settings.upstream_backoff_seconds
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.upstream_max_attempts),
            wait=wait_incrementing(start=backoff, increment=backoff),
            retry=retry_if_exception(_is_retryable_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await self._request(url, adapter)
        return result

    async def _get_json(self, url: str, adapter: TypeAdapter[Any]) -> Any:
        """Fetch and validate, returning the JSON-compatible form for caching."""
        validated = await self._get(url, adapter)
        return adapter.dump_python(validated, mode="json")

    # =========================================================================
    # Stale-while-revalidate flow
    # =========================================================================

    def _from_cache(self, cached: CacheResult, adapter: TypeAdapter[T]) -> T | None:
        try:
            return adapter.validate_python(cached.data)
        except ValidationError as e:
            logger.warning(f"Discarding cached entry that no longer validates: {e}")
            return None

    async def _fetch_resource(
        self,
        key: str,
        url: str,
        ttl: int,
        adapter: TypeAdapter[T],
    ) -> ProxyResult[T]:
        """
        Fetch a resource through the cache.

        Raises:
            UpstreamUnavailableError: If the fetch failed and nothing is cached
        """
        cached = await self.cache.get(key, ttl)
        if cached is not None:
            data = self._from_cache(cached, adapter)
            if data is not None:
                if not cached.is_stale:
                    return ProxyResult(data, cached.last_updated, "fresh")
                logger.info(f"Serving stale {key}, refreshing in background")
                self.cache.trigger_background_refresh(
                    key, lambda: self._get_json(url, adapter), ttl
                )
                return ProxyResult(data, cached.last_updated, "stale")

        async def fetch_and_store() -> ProxyResult[T]:
            payload = await self._get_json(url, adapter)
            await self.cache.set(key, payload, ttl)
            return ProxyResult(
                adapter.validate_python(payload), to_iso(self.cache.now_ms()), "fresh"
            )

        try:
            return await self.deduplicator.dedupe(key, fetch_and_store)
        except FETCH_ERRORS as e:
            logger.error(f"Fetch failed for {key}: {type(e).__name__}: {e}")
            return await self._fallback(key, ttl, adapter, e)

    async def _fallback(
        self,
        key: str,
        ttl: int,
        adapter: TypeAdapter[T],
        error: BaseException,
    ) -> ProxyResult[T]:
        # A concurrent request may have populated the cache meanwhile
        cached = await self.cache.get(key, ttl)
        if cached is not None:
            data = self._from_cache(cached, adapter)
            if data is not None:
                status: SourceStatus = "stale" if cached.is_stale else "fresh"
                return ProxyResult(data, cached.last_updated, status)
        raise UpstreamUnavailableError(key, error) from error

    # =========================================================================
    # Resources
    # =========================================================================

    async def fetch_bootstrap(
        self, matchday: bool | None = None
    ) -> ProxyResult[FplBootstrapStatic]:
        """
        Fetch bootstrap-static (events, teams, players).

        Args:
            matchday: Use the shorter matchday TTL. When None, the snapshot is
                read with the regular TTL and re-checked against the matchday
                TTL if it shows a live gameweek.
        """
        if matchday is not None:
            return await self._fetch_bootstrap(matchday)
        result = await self._fetch_bootstrap(False)
        if result.source_status == "fresh" and is_matchday(result.data):
            return await self._fetch_bootstrap(True)
        return result

    async def _fetch_bootstrap(self, matchday: bool) -> ProxyResult[FplBootstrapStatic]:
        ttl = (
            self.settings.cache_ttl_bootstrap_matchday
            if matchday
            else self.settings.cache_ttl_bootstrap
        )
        return await self._fetch_resource(
            self.keys.bootstrap,
            f"{self.base_url}/bootstrap-static/",
            ttl,
            BOOTSTRAP_ADAPTER,
        )

    async def fetch_fixtures(
        self,
        event: int | None = None,
        matchday: bool = False,
    ) -> ProxyResult[list[FplFixture]]:
        """Fetch fixtures, optionally scoped to one gameweek."""
        ttl = (
            self.settings.cache_ttl_fixtures_matchday
            if matchday
            else self.settings.cache_ttl_fixtures
        )
        url = f"{self.base_url}/fixtures/"
        if event:
            url = f"{url}?event={event}"
        return await self._fetch_resource(
            self.keys.fixtures(event), url, ttl, FIXTURES_ADAPTER
        )

    async def fetch_element_summary(self, player_id: int) -> ProxyResult[FplElementSummary]:
        """
        Fetch one player's per-gameweek history.

        This is the heavy endpoint - only detail and comparison views may call it.
        """
        return await self._fetch_resource(
            self.keys.element_summary(player_id),
            f"{self.base_url}/element-summary/{player_id}/",
            self.settings.cache_ttl_element_summary,
            ELEMENT_SUMMARY_ADAPTER,
        )

    async def probe_bootstrap(self) -> tuple[float, int]:
        """
        Fetch bootstrap-static directly, bypassing the cache.

        Returns:
            (latency in ms, number of players)
        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        bootstrap = await self._get(f"{self.base_url}/bootstrap-static/", BOOTSTRAP_ADAPTER)
        return (loop.time() - start) * 1000, len(bootstrap.elements)
