"""API route definitions - teams, players, compare and operations."""

import logging
from typing import TypeVar

from fastapi import APIRouter, Depends, Path, Query, Response
from fastapi.exceptions import RequestValidationError

from app.dependencies import get_insights_service
from app.schemas.insights import (
    ApiResponse,
    ComparePayload,
    DiagnoseResponse,
    KeepAliveResponse,
    NormalizedPlayer,
    NormalizedTeam,
    PlayerDetail,
    PlayerPosition,
    SortKey,
    TeamFocus,
)
from app.services.insights import InsightsService, ViewResult

logger = logging.getLogger(__name__)
router = APIRouter(tags=["insights"])

T = TypeVar("T")

STATUS_CODES = {"ok": 200, "not_found": 404, "unavailable": 503}


def to_response(result: ViewResult[T], response: Response) -> ApiResponse[T]:
    """Wrap a view result in the API envelope and set the HTTP status."""
    response.status_code = STATUS_CODES[result.status]
    return ApiResponse(data=result.data, meta=result.meta)


# =============================================================================
# Teams
# =============================================================================


@router.get("/teams", response_model=ApiResponse[list[NormalizedTeam]])
async def get_teams(
    response: Response,
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[list[NormalizedTeam]]:
    """All teams with momentum, sorted by momentum descending."""
    return to_response(await service.get_teams(), response)


@router.get("/teams/{team_id}", response_model=ApiResponse[TeamFocus | None])
async def get_team_focus(
    response: Response,
    team_id: int = Path(ge=1),
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[TeamFocus | None]:
    """Team focus: momentum drivers and top contributors."""
    return to_response(await service.get_team_focus(team_id), response)


# =============================================================================
# Players
# =============================================================================


@router.get("/players", response_model=ApiResponse[list[NormalizedPlayer]])
async def get_players(
    response: Response,
    sort: SortKey | None = Query(None),
    position: PlayerPosition | None = Query(None),
    team: int | None = Query(None, ge=1),
    min_mins: int | None = Query(None, ge=0, alias="minMins"),
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[list[NormalizedPlayer]]:
    """
    Filtered and sorted players.

    Sorted by the given feature dimension, or by reality score when omitted.
    """
    result = await service.get_players(sort, position, team, min_mins)
    return to_response(result, response)


@router.get("/player/{player_id}", response_model=ApiResponse[PlayerDetail | None])
async def get_player(
    response: Response,
    player_id: int = Path(ge=1),
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[PlayerDetail | None]:
    """Single player with highlight bullets."""
    return to_response(await service.get_player(player_id), response)


@router.get("/compare", response_model=ApiResponse[ComparePayload | None])
async def compare_players(
    response: Response,
    a: int = Query(ge=1),
    b: int = Query(ge=1),
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[ComparePayload | None]:
    """Head-to-head comparison of two players."""
    if a == b:
        raise RequestValidationError(
            [{"loc": ("query", "b"), "msg": "Must differ from a", "type": "value_error"}]
        )
    return to_response(await service.get_compare(a, b), response)


# =============================================================================
# Operations
# =============================================================================


@router.get("/diagnose", response_model=DiagnoseResponse, tags=["operations"])
async def diagnose(
    service: InsightsService = Depends(get_insights_service),
) -> DiagnoseResponse:
    """Configuration presence, cache round trip and upstream reachability."""
    return await service.diagnose()


@router.get("/cron/keep-alive", response_model=KeepAliveResponse, tags=["operations"])
async def keep_alive(
    response: Response,
    service: InsightsService = Depends(get_insights_service),
) -> KeepAliveResponse:
    """Write a timestamp to the remote cache so it stays active."""
    result = await service.keep_alive()
    if not result.ok:
        response.status_code = 500
    return result
