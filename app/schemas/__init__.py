"""API response schemas and upstream payload models."""

from app.schemas.insights import (
    ApiMeta,
    ApiResponse,
    ComparePayload,
    HealthResponse,
    NormalizedFixture,
    NormalizedPlayer,
    NormalizedTeam,
    PlayerDetail,
    SignalItem,
    TeamFocus,
)
from app.schemas.upstream import (
    FplBootstrapStatic,
    FplElementSummary,
    FplFixture,
)

__all__ = [
    "ApiMeta",
    "ApiResponse",
    "ComparePayload",
    "FplBootstrapStatic",
    "FplElementSummary",
    "FplFixture",
    "HealthResponse",
    "NormalizedFixture",
    "NormalizedPlayer",
    "NormalizedTeam",
    "PlayerDetail",
    "SignalItem",
    "TeamFocus",
]
