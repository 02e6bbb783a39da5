"""Derived-view builders: team focus, round resolution, compare, highlights."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.schemas.insights import (
    ComparePayload,
    NormalizedPlayer,
    NormalizedTeam,
    PlayerPosition,
    SortKey,
    TeamDriver,
    TeamFocus,
)
from app.schemas.upstream import FplElementSummary
from app.services.scoring import generate_key_differences

logger = logging.getLogger(__name__)

T = TypeVar("T")

FOCUS_PLAYER_LIMIT = 8
NEUTRAL_DRIVER_SCORE = 50

ATTACKING_POSITIONS = ("MID", "FWD")
DEFENSIVE_POSITIONS = ("DEF", "GKP")

RADAR_DIMENSIONS: list[SortKey] = ["threat", "creativity", "value", "form"]
RADAR_LABELS = ["Threat", "Creativity", "Value", "Form"]

RECENT_POINTS_WINDOW = 5
MAX_HIGHLIGHTS = 4


class EntityNotFoundError(LookupError):
    """A requested team or player is absent from a successful fetch."""

    def __init__(self, kind: str, entity_id: int) -> None:
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


def find_team(teams: list[NormalizedTeam], team_id: int) -> NormalizedTeam:
    for team in teams:
        if team.id == team_id:
            return team
    raise EntityNotFoundError("Team", team_id)


def find_player(players: list[NormalizedPlayer], player_id: int) -> NormalizedPlayer:
    for player in players:
        if player.id == player_id:
            return player
    raise EntityNotFoundError("Player", player_id)


# =============================================================================
# 1. Team Focus
# =============================================================================


def build_team_focus(team: NormalizedTeam, players: list[NormalizedPlayer]) -> TeamFocus:
    """Three drivers (form, attack, defense) plus the team's top 8 by reality."""
    squad = sorted(
        (p for p in players if p.team_id == team.id),
        key=lambda p: p.reality.score,
        reverse=True,
    )

    momentum = team.momentum
    form_note = team.chips[0] if team.chips else "Building rhythm."
    form_driver = TeamDriver(
        title="Momentum Surge" if momentum.label == "On Fire" else "Current Form",
        insight=f"{momentum.label} with score {momentum.score}/100. {form_note}",
        type="form",
        score=momentum.score,
    )

    attackers = [p for p in squad if p.position in ATTACKING_POSITIONS]
    top_attacker = max(attackers, key=lambda p: p.features.threat, default=None)
    if top_attacker is not None:
        attack_score = top_attacker.features.threat
        attack_insight = f"{top_attacker.name} leading with {attack_score}/100 threat rating"
    else:
        attack_score = NEUTRAL_DRIVER_SCORE
        attack_insight = "Spread attacking threat across the squad"

    # squad is already ordered by reality, so the first defender is the best
    top_defender = next((p for p in squad if p.position in DEFENSIVE_POSITIONS), None)
    if top_defender is not None:
        defense_score = top_defender.reality.score
        defense_insight = (
            f"{top_defender.name} anchoring defense with {defense_score}/100 reality score"
        )
    else:
        defense_score = NEUTRAL_DRIVER_SCORE
        defense_insight = f"Defensive unit averaging {defense_score}/100"

    return TeamFocus(
        team=team,
        drivers=[
            form_driver,
            TeamDriver(
                title="Attacking Threat", insight=attack_insight, type="attack", score=attack_score
            ),
            TeamDriver(
                title="Defensive Stability",
                insight=defense_insight,
                type="defense",
                score=defense_score,
            ),
        ],
        players=squad[:FOCUS_PLAYER_LIMIT],
    )


# =============================================================================
# 2. Round Resolution
# =============================================================================


def candidate_rounds(requested: int, max_steps: int, min_event: int, max_event: int) -> list[int]:
    """Requested round, then -1, +1, -2, +2 ... within bounds."""
    rounds = [requested]
    for step in range(1, max_steps + 1):
        for candidate in (requested - step, requested + step):
            if min_event <= candidate <= max_event:
                rounds.append(candidate)
    return rounds


async def find_round_with_fixtures(
    requested: int,
    fetch_round: Callable[[int], Awaitable[T]],
    count: Callable[[T], int],
    *,
    max_steps: int = 3,
    min_event: int = 1,
    max_event: int = 38,
) -> tuple[T, int]:
    """Resolve a round that has fixtures, searching outward from `requested`.

    Args:
        requested: Requested round (clamped to [min_event, max_event])
        fetch_round: Fetches one round's fixtures
        count: Number of fixtures in a fetched result
        max_steps: How far to search either side
        min_event: Lowest valid round
        max_event: Highest valid round

    Returns:
        (result, resolved round). If nothing is found, the requested round's
        (empty) result and the requested round.
    """
    requested = max(min_event, min(max_event, requested))

    first = None
    for candidate in candidate_rounds(requested, max_steps, min_event, max_event):
        result = await fetch_round(candidate)
        if first is None:
            first = result
        if count(result) > 0:
            if candidate != requested:
                logger.info(f"Round {requested} has no fixtures, resolved to {candidate}")
            return result, candidate

    return first, requested


# =============================================================================
# 3. Compare
# =============================================================================


def recent_points(summary: FplElementSummary, window: int = RECENT_POINTS_WINDOW) -> list[int]:
    """Points from the player's last `window` history rows, oldest first."""
    return [row.total_points for row in summary.history[-window:]]


def build_compare_payload(
    player_a: NormalizedPlayer,
    player_b: NormalizedPlayer,
    summary_a: FplElementSummary,
    summary_b: FplElementSummary,
) -> ComparePayload:
    return ComparePayload(
        player_a=player_a,
        player_b=player_b,
        key_differences=generate_key_differences(
            player_a.features, player_b.features, player_a.name, player_b.name
        )[:3],
        radar_dimensions=list(RADAR_DIMENSIONS),
        radar_labels=list(RADAR_LABELS),
        recent_points_a=recent_points(summary_a),
        recent_points_b=recent_points(summary_b),
    )


# =============================================================================
# 4. Player Listing and Highlights
# =============================================================================


def filter_and_sort_players(
    players: list[NormalizedPlayer],
    sort: SortKey | None = None,
    position: PlayerPosition | None = None,
    team: int | None = None,
    min_mins: int | None = None,
) -> list[NormalizedPlayer]:
    """Filter by position/team/minutes; sort by a feature, default reality."""
    result = players
    if position:
        result = [p for p in result if p.position == position]
    if team is not None:
        result = [p for p in result if p.team_id == team]
    if min_mins:
        result = [p for p in result if p.minutes >= min_mins]

    if sort:
        return sorted(result, key=lambda p: getattr(p.features, sort), reverse=True)
    return sorted(result, key=lambda p: p.reality.score, reverse=True)


def generate_highlights(player: NormalizedPlayer) -> list[str]:
    """Rule-derived highlight bullets for the player detail view."""
    highlights = []
    hype = player.hype.score
    reality = player.reality.score
    features = player.features

    if features.form >= 70:
        highlights.append(
            f"Elite form score of {features.form}, among the hottest players right now"
        )
    elif features.form >= 50:
        highlights.append(
            f"Strong form score ({features.form}) indicating consistent recent performances"
        )

    gap = reality - hype
    if gap >= 15:
        highlights.append(
            f"Undervalued gem: Reality score ({reality}) significantly exceeds Hype ({hype})"
        )
    elif gap <= -20:
        highlights.append(
            f"High risk: Hype ({hype}) outpaces Reality ({reality}), may be overhyped"
        )

    if features.threat >= 70:
        highlights.append(f"Exceptional threat score ({features.threat}), major goal threat")
    if features.creativity >= 70:
        highlights.append(f"Elite creativity ({features.creativity}), key chance creator")
    if features.value >= 70:
        highlights.append(
            f"Outstanding value score ({features.value}), points per million leader"
        )

    if "Reliable" in player.tags:
        highlights.append("Tagged as 'Reliable': consistent output week after week")
    if "Trending" in player.tags:
        highlights.append("'Trending': rising transfer activity signals growing confidence")
    if "Undervalued" in player.tags:
        highlights.append("Flagged as 'Undervalued' by the analytics")

    if not highlights:
        if reality >= 50:
            highlights.append(f"Solid Reality score of {reality}, proven FPL performer")
        else:
            highlights.append("Limited data available, monitor upcoming fixtures")

    return highlights[:MAX_HIGHLIGHTS]
