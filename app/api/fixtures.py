"""Fixtures API routes - round fixtures with momentum narrative, weekly signals."""

from fastapi import APIRouter, Depends, Query, Response

from app.api.routes import to_response
from app.dependencies import get_insights_service
from app.schemas.insights import ApiResponse, NormalizedFixture, SignalItem
from app.services.insights import InsightsService

router = APIRouter(tags=["fixtures"])


@router.get("/fixtures", response_model=ApiResponse[list[NormalizedFixture]])
async def get_fixtures(
    response: Response,
    event: int | None = Query(None, description="Gameweek; clamped to the season range"),
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[list[NormalizedFixture]]:
    """
    Fixtures with momentum contrast and narrative.

    When `event` has no fixtures, nearby rounds are searched (-1, +1, -2, ...)
    and `meta.resolvedEvent` reports the round actually returned. Without
    `event`, the whole season is returned.
    """
    return to_response(await service.get_fixtures(event), response)


@router.get("/signals", response_model=ApiResponse[list[SignalItem]])
async def get_signals(
    response: Response,
    service: InsightsService = Depends(get_insights_service),
) -> ApiResponse[list[SignalItem]]:
    """Up to 3 notable signals for the current round."""
    return to_response(await service.get_signals(), response)
