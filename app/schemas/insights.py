"""API response schemas for normalized insights.

Models serialize with camelCase keys (``shortName``, ``momentumContrast``)
and accept either camelCase or snake_case on input, so payloads read back
from the cache validate with the same models.
"""

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")

MomentumLabel = Literal["On Fire", "Rising", "Unstable", "Cooling", "Watchlist", "Stable"]
TrendDirection = Literal["up", "down", "flat"]
PlayerPosition = Literal["GKP", "DEF", "MID", "FWD"]
PlayerTag = Literal["Undervalued", "Overhyped", "Trending", "Reliable"]
SortKey = Literal["threat", "creativity", "value", "form"]
SourceStatus = Literal["fresh", "stale"]
FixturePhase = Literal["pending", "upcoming", "live", "finished"]
DriverType = Literal["attack", "defense", "form"]
SignalKind = Literal["mismatch", "closest", "trap", "riser", "faller"]


class CamelModel(BaseModel):
    """Base for response models: camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Teams
# =============================================================================


class TeamMomentum(CamelModel):
    score: int
    label: MomentumLabel
    trend: TrendDirection


class TeamSpark(CamelModel):
    """Recent results as points (W=3, D=1, L=0), oldest first."""

    last_n: list[int]


class NormalizedTeam(CamelModel):
    id: int
    code: int
    name: str
    short_name: str
    momentum: TeamMomentum
    spark: TeamSpark
    chips: list[str]


# =============================================================================
# Players
# =============================================================================


class PlayerFeatures(CamelModel):
    """Feature dimensions, each an integer in 0-100."""

    threat: int
    creativity: int
    value: int
    form: int


class ScoreValue(CamelModel):
    score: int


class NormalizedPlayer(CamelModel):
    id: int
    name: str
    photo: str | None
    team_id: int
    team_code: int
    team_short_name: str
    position: PlayerPosition
    minutes: int
    tags: list[PlayerTag]
    hype: ScoreValue
    reality: ScoreValue
    features: PlayerFeatures
    chips: list[str]


class PlayerDetail(CamelModel):
    """Single player with rule-derived highlight bullets (max 4)."""

    player: NormalizedPlayer
    highlights: list[str]


# =============================================================================
# Fixtures
# =============================================================================


class FixtureTeam(CamelModel):
    id: int
    code: int
    short_name: str


class MomentumContrast(CamelModel):
    """Momentum of both sides; None when a team's momentum is unknown."""

    home_score: int | None
    away_score: int | None


class NormalizedFixture(CamelModel):
    id: int
    event: int
    kickoff_time: str
    finished: bool
    started: bool
    home_score: int | None = None
    away_score: int | None = None
    home_team: FixtureTeam
    away_team: FixtureTeam
    momentum_contrast: MomentumContrast
    narrative_tag: str
    narrative_chips: list[str]
    phase: FixturePhase


# =============================================================================
# Derived views
# =============================================================================


class TeamDriver(CamelModel):
    title: str
    insight: str
    type: DriverType
    score: int


class TeamFocus(CamelModel):
    team: NormalizedTeam
    drivers: list[TeamDriver]
    players: list[NormalizedPlayer]


class ComparePayload(CamelModel):
    player_a: NormalizedPlayer
    player_b: NormalizedPlayer
    key_differences: list[str]
    radar_dimensions: list[SortKey]
    radar_labels: list[str]
    recent_points_a: list[int]
    recent_points_b: list[int]


class SignalItem(CamelModel):
    kind: SignalKind
    title: str
    subtitle: str
    home_team_id: int | None = None
    away_team_id: int | None = None
    fixture_id: int | None = None
    delta_label: str | None = None
    href: str


# =============================================================================
# Envelope
# =============================================================================


class ApiMeta(CamelModel):
    last_updated: str
    source_status: SourceStatus
    current_event: int | None = None
    requested_event: int | None = None
    resolved_event: int | None = None


class ApiResponse(CamelModel, Generic[T]):
    """Envelope wrapping every data endpoint."""

    data: T
    meta: ApiMeta


# =============================================================================
# Operational
# =============================================================================


class UpstreamSnapshot(CamelModel):
    last_updated: str
    source_status: SourceStatus


class HealthResponse(CamelModel):
    status: Literal["ok", "degraded"]
    ok: bool
    cache: Literal["remote", "memory"]
    cache_reachable: bool | None = None
    timestamp: str
    in_flight: int
    upstream: UpstreamSnapshot | None


class ProbeResult(CamelModel):
    ok: bool
    latency_ms: float | None = None
    error: str | None = None
    detail: str | None = None


class DiagnoseResponse(CamelModel):
    env: dict[str, bool]
    cache: ProbeResult
    upstream: ProbeResult


class KeepAliveResponse(CamelModel):
    ok: bool
    last_ping: str | None = None
    error: str | None = None
