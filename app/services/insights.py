"""Insights service: assembles cached, normalized views for the API layer.

Each view follows the same pattern:
1. Fresh derived entry in the cache -> return it
2. Otherwise build it (one build per key at a time), cache it, return it
3. If the build fails, serve the previous derived entry as stale
4. If nothing is cached either, return an explicit "unavailable" result

The service never raises past its boundary; the API layer maps
``ViewResult.status`` to an HTTP status.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Literal, Protocol, TypeVar

from pydantic import TypeAdapter, ValidationError

from app.config import Settings, get_settings
from app.schemas.insights import (
    ApiMeta,
    ComparePayload,
    DiagnoseResponse,
    HealthResponse,
    KeepAliveResponse,
    NormalizedFixture,
    NormalizedPlayer,
    NormalizedTeam,
    PlayerDetail,
    PlayerPosition,
    ProbeResult,
    SignalItem,
    SortKey,
    SourceStatus,
    TeamFocus,
    UpstreamSnapshot,
)
from app.schemas.upstream import FplBootstrapStatic, FplElementSummary, FplFixture
from app.services.cache import (
    KEEP_ALIVE_KEY,
    KEY_PREFIX,
    REMOTE_ERRORS,
    CacheBackendError,
    CacheKeys,
    CacheStore,
    to_iso,
)
from app.services.dedupe import RequestDeduplicator
from app.services.fpl_client import (
    FETCH_ERRORS,
    ProxyResult,
    UpstreamUnavailableError,
    get_current_gameweek,
    is_matchday,
)
from app.services.normalize import normalize_fixtures, normalize_players, normalize_teams
from app.services.scoring import generate_key_differences
from app.services.signals import get_weekly_signals
from app.services.views import (
    EntityNotFoundError,
    build_compare_payload,
    build_team_focus,
    filter_and_sort_players,
    find_player,
    find_round_with_fixtures,
    find_team,
    generate_highlights,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ViewStatus = Literal["ok", "not_found", "unavailable"]

TEAMS_ADAPTER: TypeAdapter[list[NormalizedTeam]] = TypeAdapter(list[NormalizedTeam])
PLAYERS_ADAPTER: TypeAdapter[list[NormalizedPlayer]] = TypeAdapter(list[NormalizedPlayer])
COMPARE_ADAPTER: TypeAdapter[ComparePayload] = TypeAdapter(ComparePayload)

DIAGNOSE_KEY = f"{KEY_PREFIX}:diagnose"


# =============================================================================
# Type Definitions
# =============================================================================


class FplClientProtocol(Protocol):
    """Protocol for FPL API client dependency injection."""

    async def fetch_bootstrap(
        self, matchday: bool | None = None
    ) -> ProxyResult[FplBootstrapStatic]: ...
    async def fetch_fixtures(
        self, event: int | None = None, matchday: bool = False
    ) -> ProxyResult[list[FplFixture]]: ...
    async def fetch_element_summary(self, player_id: int) -> ProxyResult[FplElementSummary]: ...
    async def probe_bootstrap(self) -> tuple[float, int]: ...


@dataclass(slots=True)
class ViewResult(Generic[T]):
    """A view payload, its metadata and how the API should answer."""

    data: T
    meta: ApiMeta
    status: ViewStatus = "ok"


@dataclass(slots=True)
class Built(Generic[T]):
    """A derived payload with the provenance of the data it was built from."""

    data: T
    last_updated: str
    source_status: SourceStatus


def combine_status(*statuses: SourceStatus) -> SourceStatus:
    """Stale if any input is stale."""
    return "stale" if "stale" in statuses else "fresh"


# =============================================================================
# Service
# =============================================================================


class InsightsService:
    """Builds and caches the normalized views served by the API."""

    def __init__(
        self,
        fpl_client: FplClientProtocol,
        cache: CacheStore,
        deduplicator: RequestDeduplicator,
        settings: Settings | None = None,
    ) -> None:
        self.fpl_client = fpl_client
        self.cache = cache
        self.deduplicator = deduplicator
        self.settings = settings or get_settings()
        self.keys = CacheKeys(self.settings.cache_version)

    # -------------------------------------------------------------------------
    # Derived cache
    # -------------------------------------------------------------------------

    def _parse(self, raw: Any, adapter: TypeAdapter[T]) -> Built[T] | None:
        """Parse a stored derived entry ({"items", "lastUpdated", "sourceStatus"})."""
        try:
            return Built(
                data=adapter.validate_python(raw["items"]),
                last_updated=str(raw["lastUpdated"]),
                source_status="stale" if raw.get("sourceStatus") == "stale" else "fresh",
            )
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable derived entry: {type(e).__name__}: {e}")
            return None

    async def _cached_view(
        self,
        key: str,
        ttl: int,
        adapter: TypeAdapter[T],
        build: Callable[[], Awaitable[Built[T]]],
    ) -> Built[T]:
        """
        Serve a derived view through the cache.

        Raises:
            UpstreamUnavailableError: Build failed and nothing is cached
            EntityNotFoundError: Propagated from the build
        """
        cached = await self.cache.get(key, ttl)
        previous = self._parse(cached.data, adapter) if cached is not None else None
        if cached is not None and previous is not None and not cached.is_stale:
            return previous

        async def build_and_store() -> Built[T]:
            built = await build()
            payload = {
                "items": adapter.dump_python(built.data, mode="json", by_alias=True),
                "lastUpdated": built.last_updated,
                "sourceStatus": built.source_status,
            }
            await self.cache.set(key, payload, ttl)
            return built

        try:
            return await self.deduplicator.dedupe(key, build_and_store)
        except UpstreamUnavailableError:
            if previous is None:
                raise
            logger.warning(f"Serving stale derived view for {key}")
            return Built(previous.data, previous.last_updated, "stale")

    async def _load_teams(self) -> Built[list[NormalizedTeam]]:
        async def build() -> Built[list[NormalizedTeam]]:
            bootstrap, fixtures = await asyncio.gather(
                self.fpl_client.fetch_bootstrap(),
                self.fpl_client.fetch_fixtures(),
            )
            teams = normalize_teams(
                bootstrap.data, fixtures.data, window=self.settings.momentum_window
            )
            return Built(
                teams,
                bootstrap.last_updated,
                combine_status(bootstrap.source_status, fixtures.source_status),
            )

        return await self._cached_view(
            self.keys.teams, self.settings.cache_ttl_teams, TEAMS_ADAPTER, build
        )

    async def _load_players(self) -> Built[list[NormalizedPlayer]]:
        """All normalized players, in upstream order."""

        async def build() -> Built[list[NormalizedPlayer]]:
            bootstrap = await self.fpl_client.fetch_bootstrap()
            return Built(
                normalize_players(bootstrap.data),
                bootstrap.last_updated,
                bootstrap.source_status,
            )

        return await self._cached_view(
            self.keys.players_base, self.settings.cache_ttl_players, PLAYERS_ADAPTER, build
        )

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    async def get_teams(self) -> ViewResult[list[NormalizedTeam]]:
        """Normalized teams sorted by momentum descending."""
        try:
            built = await self._load_teams()
        except UpstreamUnavailableError as e:
            logger.error(f"Teams unavailable: {e}")
            return self._unavailable([])
        return self._ok(built)

    async def get_players(
        self,
        sort: SortKey | None = None,
        position: PlayerPosition | None = None,
        team: int | None = None,
        min_mins: int | None = None,
    ) -> ViewResult[list[NormalizedPlayer]]:
        """Filtered and sorted player list (default sort: reality descending)."""

        async def build() -> Built[list[NormalizedPlayer]]:
            base = await self._load_players()
            players = filter_and_sort_players(base.data, sort, position, team, min_mins)
            return Built(players, base.last_updated, base.source_status)

        key = self.keys.players(sort, position, team, min_mins)
        try:
            built = await self._cached_view(
                key, self.settings.cache_ttl_players, PLAYERS_ADAPTER, build
            )
        except UpstreamUnavailableError as e:
            logger.error(f"Players unavailable for {key}: {e}")
            fallback = await self._default_players_fallback()
            if fallback is None:
                return self._unavailable([])
            return fallback
        return self._ok(built)

    async def _default_players_fallback(self) -> ViewResult[list[NormalizedPlayer]] | None:
        """Any cached copy of the unfiltered listing, labelled stale."""
        cached = await self.cache.get(self.keys.players(), self.settings.cache_ttl_players)
        if cached is None:
            return None
        previous = self._parse(cached.data, PLAYERS_ADAPTER)
        if previous is None:
            return None
        return ViewResult(
            previous.data,
            ApiMeta(last_updated=previous.last_updated, source_status="stale"),
        )

    async def get_player(self, player_id: int) -> ViewResult[PlayerDetail | None]:
        """One player with highlight bullets."""
        try:
            base = await self._load_players()
            player = find_player(base.data, player_id)
        except EntityNotFoundError:
            return self._not_found()
        except UpstreamUnavailableError as e:
            logger.error(f"Player {player_id} unavailable: {e}")
            return self._unavailable(None)

        detail = PlayerDetail(player=player, highlights=generate_highlights(player))
        return ViewResult(
            detail,
            ApiMeta(last_updated=base.last_updated, source_status=base.source_status),
        )

    async def get_team_focus(self, team_id: int) -> ViewResult[TeamFocus | None]:
        """Team focus: drivers plus top players, no per-player detail calls."""
        try:
            teams, players = await asyncio.gather(self._load_teams(), self._load_players())
            team = find_team(teams.data, team_id)
        except EntityNotFoundError:
            return self._not_found()
        except UpstreamUnavailableError as e:
            logger.error(f"Team focus {team_id} unavailable: {e}")
            return self._unavailable(None)

        focus = build_team_focus(team, players.data)
        return ViewResult(
            focus,
            ApiMeta(
                last_updated=teams.last_updated,
                source_status=combine_status(teams.source_status, players.source_status),
            ),
        )

    async def get_fixtures(self, event: int | None = None) -> ViewResult[list[NormalizedFixture]]:
        """Fixtures for a round (with fallback search) or the whole season."""
        try:
            bootstrap = await self.fpl_client.fetch_bootstrap()
            matchday = is_matchday(bootstrap.data)
            current = get_current_gameweek(bootstrap.data)

            resolved_event = None
            if event is not None:
                fixtures, resolved_event = await find_round_with_fixtures(
                    event,
                    lambda gw: self.fpl_client.fetch_fixtures(gw, matchday),
                    lambda result: len(result.data),
                    max_steps=self.settings.fixture_fallback_steps,
                    min_event=self.settings.min_event,
                    max_event=self.settings.max_event,
                )
            else:
                fixtures = await self.fpl_client.fetch_fixtures(None, matchday)

            # Momentum comes from the whole season, not just this round
            teams = await self._load_teams()
        except UpstreamUnavailableError as e:
            logger.error(f"Fixtures unavailable: {e}")
            return self._unavailable([], requested_event=event)

        return ViewResult(
            normalize_fixtures(fixtures.data, teams.data),
            ApiMeta(
                last_updated=fixtures.last_updated,
                source_status=combine_status(
                    bootstrap.source_status, fixtures.source_status, teams.source_status
                ),
                current_event=current.id if current else None,
                requested_event=event,
                resolved_event=resolved_event,
            ),
        )

    async def get_compare(self, a: int, b: int) -> ViewResult[ComparePayload | None]:
        """Two-player comparison, using exactly two element-summary lookups."""
        first, second = min(a, b), max(a, b)

        async def build() -> Built[ComparePayload]:
            base = await self._load_players()
            player_a = find_player(base.data, first)
            player_b = find_player(base.data, second)
            summary_a, summary_b = await asyncio.gather(
                self.fpl_client.fetch_element_summary(first),
                self.fpl_client.fetch_element_summary(second),
            )
            return Built(
                build_compare_payload(player_a, player_b, summary_a.data, summary_b.data),
                base.last_updated,
                combine_status(
                    base.source_status, summary_a.source_status, summary_b.source_status
                ),
            )

        try:
            built = await self._cached_view(
                self.keys.compare(a, b), self.settings.cache_ttl_compare, COMPARE_ADAPTER, build
            )
        except EntityNotFoundError:
            return self._not_found()
        except UpstreamUnavailableError as e:
            logger.error(f"Compare {a} vs {b} unavailable: {e}")
            return self._unavailable(None)

        payload = built.data if built.data.player_a.id == a else swap_compare(built.data)
        return ViewResult(
            payload,
            ApiMeta(last_updated=built.last_updated, source_status=built.source_status),
        )

    async def get_signals(self) -> ViewResult[list[SignalItem]]:
        """Weekly signals for the current round."""
        try:
            bootstrap = await self.fpl_client.fetch_bootstrap()
            current = get_current_gameweek(bootstrap.data)
            fixtures, teams = await asyncio.gather(
                self.fpl_client.fetch_fixtures(current.id if current else None),
                self._load_teams(),
            )
        except UpstreamUnavailableError as e:
            logger.error(f"Signals unavailable: {e}")
            return self._unavailable([])

        return ViewResult(
            get_weekly_signals(teams.data, fixtures.data),
            ApiMeta(
                last_updated=fixtures.last_updated,
                source_status=combine_status(
                    bootstrap.source_status, fixtures.source_status, teams.source_status
                ),
                current_event=current.id if current else None,
            ),
        )

    # -------------------------------------------------------------------------
    # Operational
    # -------------------------------------------------------------------------

    async def health(self) -> HealthResponse:
        """Liveness plus upstream/cache snapshot."""
        upstream = None
        try:
            bootstrap = await self.fpl_client.fetch_bootstrap()
            upstream = UpstreamSnapshot(
                last_updated=bootstrap.last_updated,
                source_status=bootstrap.source_status,
            )
        except UpstreamUnavailableError as e:
            logger.error(f"Health check: upstream unavailable: {e}")

        cache_reachable = await self.cache.ping()
        healthy = upstream is not None and cache_reachable is not False
        return HealthResponse(
            status="ok" if healthy else "degraded",
            ok=healthy,
            cache=self.cache.backend,
            cache_reachable=cache_reachable,
            timestamp=self._now_iso(),
            in_flight=self.deduplicator.in_flight,
            upstream=upstream,
        )

    async def diagnose(self) -> DiagnoseResponse:
        """Configuration presence, remote cache round trip and upstream probe."""
        env = {
            "KV_REST_URL": bool(self.settings.kv_rest_url),
            "KV_REST_TOKEN": bool(self.settings.kv_rest_token),
        }

        try:
            latency = await self.cache.round_trip(DIAGNOSE_KEY)
            cache_probe = ProbeResult(ok=True, latency_ms=round(latency, 1))
        except REMOTE_ERRORS as e:
            cache_probe = ProbeResult(ok=False, error=f"{type(e).__name__}: {e}")

        try:
            latency, elements = await self.fpl_client.probe_bootstrap()
            upstream_probe = ProbeResult(
                ok=elements > 0,
                latency_ms=round(latency, 1),
                detail=f"{elements} elements",
            )
        except FETCH_ERRORS as e:
            upstream_probe = ProbeResult(ok=False, error=f"{type(e).__name__}: {e}")

        return DiagnoseResponse(env=env, cache=cache_probe, upstream=upstream_probe)

    async def keep_alive(self) -> KeepAliveResponse:
        """Write a timestamp to the keep-alive key so the remote store stays active."""
        timestamp = self.cache.now_ms()
        data = {"lastPing": timestamp}
        ttl = self.settings.cache_ttl_keep_alive
        try:
            if self.cache.is_configured():
                await self.cache.write_remote(KEEP_ALIVE_KEY, data, ttl)
            else:
                await self.cache.set(KEEP_ALIVE_KEY, data, ttl)
        except CacheBackendError as e:
            logger.error(f"Keep-alive ping failed: {e}")
            return KeepAliveResponse(ok=False, error=str(e))
        return KeepAliveResponse(ok=True, last_ping=to_iso(timestamp))

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def _now_iso(self) -> str:
        return to_iso(self.cache.now_ms())

    def _ok(self, built: Built[T]) -> ViewResult[T]:
        return ViewResult(
            built.data,
            ApiMeta(last_updated=built.last_updated, source_status=built.source_status),
        )

    def _unavailable(self, empty: T, requested_event: int | None = None) -> ViewResult[T]:
        return ViewResult(
            empty,
            ApiMeta(
                last_updated=self._now_iso(),
                source_status="stale",
                requested_event=requested_event,
            ),
            status="unavailable",
        )

    def _not_found(self) -> ViewResult[None]:
        return ViewResult(
            None,
            ApiMeta(last_updated=self._now_iso(), source_status="fresh"),
            status="not_found",
        )


def swap_compare(payload: ComparePayload) -> ComparePayload:
    """Same comparison seen from the other player's side."""
    return ComparePayload(
        player_a=payload.player_b,
        player_b=payload.player_a,
        key_differences=generate_key_differences(
            payload.player_b.features,
            payload.player_a.features,
            payload.player_b.name,
            payload.player_a.name,
        )[:3],
        radar_dimensions=payload.radar_dimensions,
        radar_labels=payload.radar_labels,
        recent_points_a=payload.recent_points_b,
        recent_points_b=payload.recent_points_a,
    )
