"""Two-tier cache with stale-while-revalidate support.

The primary store is a remote key/value service reached over its REST API
(Upstash-compatible: POST a Redis command array, read ``{"result": ...}``).
Any remote failure (timeout, network, malformed response) falls through to an
in-process TLRU cache, so cache errors never reach callers.

Entries are stored as ``{"data": ..., "timestamp": epoch_ms}`` and retained for
2x the freshness TTL, which is what allows stale data to be served while a
background refresh runs. Freshness is derived on read, never stored.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from cachetools import TLRUCache

logger = logging.getLogger(__name__)

KEY_PREFIX = "apexpl"
KEEP_ALIVE_KEY = f"{KEY_PREFIX}:keep-alive"

DEFAULT_PLAYERS_SORT = "reality"

# Errors from the remote store that fall through to the memory tier
REMOTE_ERRORS = (
    httpx.HTTPError,
    asyncio.TimeoutError,
    ValueError,
    TypeError,
)


class CacheBackendError(ValueError):
    """Remote key/value service returned an error or a malformed payload."""


def to_iso(timestamp_ms: int) -> str:
    """Format an epoch-milliseconds timestamp as an ISO-8601 UTC string."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class CacheEntry:
    """A cached value and the epoch-ms time it was written."""

    data: Any
    timestamp: int

    def to_payload(self) -> dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp}

    @classmethod
    def from_payload(cls, payload: Any) -> "CacheEntry":
        """Parse a stored payload (JSON string or already-decoded dict)."""
        if isinstance(payload, (str, bytes)):
            payload = json.loads(payload)
        if not isinstance(payload, dict) or "timestamp" not in payload:
            raise CacheBackendError(f"Malformed cache payload: {str(payload)[:200]}")
        return cls(data=payload.get("data"), timestamp=int(payload["timestamp"]))


@dataclass(slots=True)
class CacheResult:
    """Result of a cache read with derived staleness."""

    data: Any
    is_stale: bool
    timestamp: int

    @property
    def last_updated(self) -> str:
        return to_iso(self.timestamp)


class CacheKeys:
    """Deterministic, versioned cache keys.

    Every key embeds the version token, so bumping it orphans all previously
    cached entries at once.
    """

    def __init__(self, version: str = "v1") -> None:
        self.version = version
        self._base = f"{KEY_PREFIX}:{version}"

    @property
    def bootstrap(self) -> str:
        return f"{self._base}:fpl:bootstrap"

    def fixtures(self, event: int | None = None) -> str:
        if event:
            return f"{self._base}:fpl:fixtures:gw{event}"
        return f"{self._base}:fpl:fixtures:all"

    def element_summary(self, player_id: int) -> str:
        return f"{self._base}:fpl:element:{player_id}"

    @property
    def teams(self) -> str:
        return f"{self._base}:teams"

    @property
    def players_base(self) -> str:
        return f"{self._base}:players:base"

    def players(
        self,
        sort: str | None = None,
        position: str | None = None,
        team: int | None = None,
        min_mins: int | None = None,
    ) -> str:
        """Players listing key with defaults substituted in canonical order."""
        sort_part = sort or DEFAULT_PLAYERS_SORT
        pos_part = position or "all"
        team_part = team if team is not None else "all"
        min_part = min_mins or 0
        return (
            f"{self._base}:players:sort={sort_part}:pos={pos_part}"
            f":team={team_part}:min={min_part}"
        )

    def compare(self, a: int, b: int) -> str:
        """Order-independent compare key."""
        return f"{self._base}:compare:{min(a, b)}-{max(a, b)}"


def _memory_ttu(_key: str, value: tuple[CacheEntry, int], now: float) -> float:
    """Memory entries expire 2x TTL after they are written."""
    return now + value[1] * 2


class CacheStore:
    """Cache service with a remote primary and an in-process fallback.

    Args:
        url: Remote key/value REST endpoint (None = memory only)
        token: Bearer token for the remote endpoint
        timeout: Hard timeout for each remote round trip, in seconds
        memory_size: Max entries kept in the memory fallback
        clock: Seconds-since-epoch clock; injectable for tests
    """

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        *,
        timeout: float = 2.0,
        memory_size: int = 512,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._url = url.rstrip("/") if url else None
        self._token = token
        self._timeout = timeout
        self._clock = clock
        self._memory: TLRUCache[str, tuple[CacheEntry, int]] = TLRUCache(
            maxsize=memory_size,
            ttu=_memory_ttu,
            timer=clock,
        )
        self._client: httpx.AsyncClient | None = None
        # Strong references keep fire-and-forget tasks alive until they finish
        self._refresh_tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Any) -> "CacheStore":
        return cls(
            settings.kv_rest_url,
            settings.kv_rest_token,
            timeout=settings.kv_timeout_seconds,
            memory_size=settings.memory_cache_size,
        )

    def is_configured(self) -> bool:
        """True when the remote store is configured."""
        return bool(self._url and self._token)

    @property
    def backend(self) -> str:
        return "remote" if self.is_configured() else "memory"

    @property
    def pending_refreshes(self) -> int:
        return len(self._refresh_tasks)

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the remote HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _command(self, *args: Any) -> Any:
        """Run one Redis command against the remote REST endpoint."""
        client = self._get_client()
        response = await asyncio.wait_for(
            client.post(self._url, json=list(args)),
            timeout=self._timeout,
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise CacheBackendError(f"Unexpected response body: {str(body)[:200]}")
        if body.get("error"):
            raise CacheBackendError(str(body["error"]))
        return body.get("result")

    def _to_result(self, entry: CacheEntry, ttl_seconds: int) -> CacheResult:
        is_stale = self.now_ms() - entry.timestamp > ttl_seconds * 1000
        return CacheResult(data=entry.data, is_stale=is_stale, timestamp=entry.timestamp)

    async def get(self, key: str, ttl_seconds: int) -> CacheResult | None:
        """Get a cached value with stale detection.

        Returns:
            CacheResult, or None on a miss
        """
        if self.is_configured():
            try:
                raw = await self._command("GET", key)
                if raw is None:
                    return None
                return self._to_result(CacheEntry.from_payload(raw), ttl_seconds)
            except REMOTE_ERRORS as e:
                logger.error(f"Cache GET error for {key}: {type(e).__name__}: {e}")

        cached = self._memory.get(key)
        if cached is None:
            return None
        return self._to_result(cached[0], ttl_seconds)

    async def set(self, key: str, data: Any, ttl_seconds: int) -> None:
        """Store a value, replacing any previous entry for the key.

        The entry is kept for 2x TTL so it can be served stale.
        """
        entry = CacheEntry(data=data, timestamp=self.now_ms())

        if self.is_configured():
            try:
                await self._command(
                    "SET", key, json.dumps(entry.to_payload()), "EX", ttl_seconds * 2
                )
                return
            except REMOTE_ERRORS as e:
                logger.error(f"Cache SET error for {key}: {type(e).__name__}: {e}")

        self._memory.expire()
        self._memory[key] = (entry, ttl_seconds)

    async def write_remote(self, key: str, data: Any, ttl_seconds: int) -> None:
        """Store a value on the remote store only, without memory fallback.

        Raises:
            CacheBackendError: If the store is not configured or the write fails
        """
        if not self.is_configured():
            raise CacheBackendError("Remote cache not configured")
        entry = CacheEntry(data=data, timestamp=self.now_ms())
        try:
            await self._command(
                "SET", key, json.dumps(entry.to_payload()), "EX", ttl_seconds * 2
            )
        except CacheBackendError:
            raise
        except REMOTE_ERRORS as e:
            raise CacheBackendError(f"{type(e).__name__}: {e}") from e

    def trigger_background_refresh(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
    ) -> None:
        """Refresh a key in the background without blocking the caller."""
        task = asyncio.create_task(self._refresh(key, fetcher, ttl_seconds))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
    ) -> None:
        try:
            data = await fetcher()
            await self.set(key, data, ttl_seconds)
            logger.info(f"Background refresh completed for {key}")
        except Exception as e:
            # Never propagates: the caller was already served stale data
            logger.error(f"Background refresh failed for {key}: {type(e).__name__}: {e}")

    async def wait_for_refreshes(self) -> None:
        """Wait until all in-progress background refreshes have finished."""
        while self._refresh_tasks:
            await asyncio.gather(*list(self._refresh_tasks))

    async def ping(self) -> bool | None:
        """Check remote connectivity with a single PING.

        Returns:
            None when the remote store is not configured, else whether it
            answered within the timeout
        """
        if not self.is_configured():
            return None
        try:
            return await self._command("PING") == "PONG"
        except REMOTE_ERRORS as e:
            logger.error(f"Cache PING error: {type(e).__name__}: {e}")
            return False

    async def round_trip(self, key: str) -> float:
        """Write and read back a probe value on the remote store.

        Returns:
            Round-trip latency in milliseconds

        Raises:
            CacheBackendError: If the store is not configured or the value
                read back does not match
        """
        if not self.is_configured():
            raise CacheBackendError("Remote cache not configured")

        start = time.monotonic()
        await self._command("SET", key, "ok")
        value = await self._command("GET", key)
        if value != "ok":
            raise CacheBackendError(f"Value mismatch: {value!r}")
        return (time.monotonic() - start) * 1000
