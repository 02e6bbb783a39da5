"""Normalization of validated upstream entities into scored insight models."""

import math
from dataclasses import dataclass, field
from typing import Literal

from app.schemas.insights import (
    FixtureTeam,
    MomentumContrast,
    NormalizedFixture,
    NormalizedPlayer,
    NormalizedTeam,
    PlayerPosition,
    ScoreValue,
    TeamMomentum,
    TeamSpark,
)
from app.schemas.upstream import FplBootstrapStatic, FplElement, FplFixture
from app.services.narrative import resolve_fixture_narrative
from app.services.scoring import (
    FeatureInputs,
    HypeInputs,
    RealityInputs,
    TeamMomentumInputs,
    assign_player_tags,
    calculate_features,
    calculate_hype_score,
    calculate_reality_score,
    calculate_team_momentum,
    generate_player_chips,
    generate_team_chips,
    get_momentum_label,
    percentile_rank,
)

POSITION_MAP: dict[int, PlayerPosition] = {
    1: "GKP",
    2: "DEF",
    3: "MID",
    4: "FWD",
}
DEFAULT_POSITION: PlayerPosition = "MID"

UNKNOWN_TEAM = "???"

RESULT_POINTS = {"W": 3, "D": 1, "L": 0}

DEFAULT_MOMENTUM_WINDOW = 5

Result = Literal["W", "D", "L"]


def _safe_float(val: str | float | None, default: float = 0.0) -> float:
    """Safely convert an upstream numeric string to float."""
    if val is None or val == "":
        return default
    try:
        parsed = float(val)
    except (ValueError, TypeError):
        return default
    return parsed if math.isfinite(parsed) else default


# =============================================================================
# Team Stats from Fixtures
# =============================================================================


@dataclass(slots=True)
class TeamStats:
    """A team's record over its trailing window of finished fixtures."""

    points: int = 0
    goals_for: int = 0
    goals_against: int = 0
    clean_sheets: int = 0
    fixture_count: int = 0
    results: list[Result] = field(default_factory=list)

    def to_momentum_inputs(self) -> TeamMomentumInputs:
        return TeamMomentumInputs(
            form_points=self.points,
            goals_for=self.goals_for,
            goals_against=self.goals_against,
            clean_sheets=self.clean_sheets,
            fixture_count=self.fixture_count,
        )


def compute_team_stats(
    team_id: int,
    fixtures: list[FplFixture],
    window: int = DEFAULT_MOMENTUM_WINDOW,
) -> TeamStats:
    """Aggregate the team's last `window` finished fixtures, oldest first."""
    played = sorted(
        (
            f
            for f in fixtures
            if f.finished and team_id in (f.team_h, f.team_a)
        ),
        key=lambda f: f.kickoff_time or "",
    )
    stats = TeamStats()
    if window <= 0:
        return stats

    for fixture in played[-window:]:
        is_home = fixture.team_h == team_id
        home_goals = fixture.team_h_score or 0
        away_goals = fixture.team_a_score or 0
        scored, conceded = (home_goals, away_goals) if is_home else (away_goals, home_goals)

        stats.goals_for += scored
        stats.goals_against += conceded
        stats.fixture_count += 1
        if conceded == 0:
            stats.clean_sheets += 1

        if scored > conceded:
            stats.results.append("W")
        elif scored == conceded:
            stats.results.append("D")
        else:
            stats.results.append("L")
        stats.points += RESULT_POINTS[stats.results[-1]]

    return stats


# =============================================================================
# Teams
# =============================================================================


def normalize_teams(
    bootstrap: FplBootstrapStatic,
    fixtures: list[FplFixture],
    window: int = DEFAULT_MOMENTUM_WINDOW,
) -> list[NormalizedTeam]:
    """Score every team's momentum; sorted by momentum descending."""
    stats_by_team = {
        team.id: compute_team_stats(team.id, fixtures, window) for team in bootstrap.teams
    }
    population = [stats.to_momentum_inputs() for stats in stats_by_team.values()]

    teams = []
    for fpl_team in bootstrap.teams:
        stats = stats_by_team[fpl_team.id]
        inputs = stats.to_momentum_inputs()
        score = calculate_team_momentum(inputs, population)
        spark = [RESULT_POINTS[r] for r in stats.results]

        teams.append(
            NormalizedTeam(
                id=fpl_team.id,
                code=fpl_team.code,
                name=fpl_team.name,
                short_name=fpl_team.short_name,
                momentum=TeamMomentum(
                    score=score,
                    label=get_momentum_label(score),
                    trend="flat",  # No previous snapshot to diff against
                ),
                spark=TeamSpark(last_n=spark or [0]),
                chips=generate_team_chips(score, inputs),
            )
        )

    teams.sort(key=lambda t: t.momentum.score, reverse=True)
    return teams


# =============================================================================
# Players
# =============================================================================


def _hype_inputs(e: FplElement) -> HypeInputs:
    return HypeInputs(
        selected_by_percent=_safe_float(e.selected_by_percent),
        transfers_in=e.transfers_in_event,
        transfers_out=e.transfers_out_event,
        now_cost=e.now_cost,
    )


def _reality_inputs(e: FplElement) -> RealityInputs:
    return RealityInputs(
        total_points=e.total_points,
        minutes=e.minutes,
        goals_scored=e.goals_scored,
        assists=e.assists,
        bonus=e.bonus,
        clean_sheets=e.clean_sheets,
        position=e.element_type,
    )


def _feature_inputs(e: FplElement) -> FeatureInputs:
    return FeatureInputs(
        threat=_safe_float(e.threat),
        creativity=_safe_float(e.creativity),
        influence=_safe_float(e.influence),
        form=_safe_float(e.form),
        now_cost=e.now_cost,
        total_points=e.total_points,
        minutes=e.minutes,
    )


def normalize_players(bootstrap: FplBootstrapStatic) -> list[NormalizedPlayer]:
    """Score every player against the full current population.

    Order follows the upstream element list.
    """
    teams = {t.id: t for t in bootstrap.teams}
    elements = bootstrap.elements

    hype_population = [_hype_inputs(e) for e in elements]
    reality_population = [_reality_inputs(e) for e in elements]
    feature_population = [_feature_inputs(e) for e in elements]
    net_transfers = [h.net_transfers for h in hype_population]

    players = []
    for i, element in enumerate(elements):
        team = teams.get(element.team)
        hype = calculate_hype_score(hype_population[i], hype_population)
        reality = calculate_reality_score(reality_population[i], reality_population)
        features = calculate_features(feature_population[i], feature_population)
        net_transfer_rank = percentile_rank(hype_population[i].net_transfers, net_transfers)

        players.append(
            NormalizedPlayer(
                id=element.id,
                name=element.web_name,
                photo=element.photo or None,
                team_id=element.team,
                team_code=team.code if team else 0,
                team_short_name=team.short_name if team else UNKNOWN_TEAM,
                position=POSITION_MAP.get(element.element_type, DEFAULT_POSITION),
                minutes=element.minutes,
                tags=assign_player_tags(hype, reality, net_transfer_rank),
                hype=ScoreValue(score=hype),
                reality=ScoreValue(score=reality),
                features=features,
                chips=generate_player_chips(features, hype, reality),
            )
        )

    return players


# =============================================================================
# Fixtures
# =============================================================================


def _momentum_of(team: NormalizedTeam | None) -> int | None:
    """Clamped momentum score, or None when the team is unknown."""
    if team is None:
        return None
    score = team.momentum.score
    if not math.isfinite(score):
        return None
    return max(0, min(100, int(round(score))))


def _fixture_team(team_id: int, team: NormalizedTeam | None) -> FixtureTeam:
    return FixtureTeam(
        id=team_id,
        code=team.code if team else 0,
        short_name=team.short_name if team else UNKNOWN_TEAM,
    )


def normalize_fixtures(
    fixtures: list[FplFixture],
    teams: list[NormalizedTeam],
    filter_null_kickoff: bool = True,
) -> list[NormalizedFixture]:
    """Attach momentum contrast and narrative to fixtures.

    Momentum is never defaulted: a team missing from `teams` yields None,
    and the narrative falls back to "Momentum Pending".

    Args:
        fixtures: Validated upstream fixtures
        teams: Normalized teams (momentum source)
        filter_null_kickoff: Drop fixtures with no kickoff time (display lists)

    Returns:
        Fixtures sorted by kickoff ascending, unknown kickoff last
    """
    team_map = {t.id: t for t in teams}
    if filter_null_kickoff:
        fixtures = [f for f in fixtures if f.kickoff_time]

    normalized = []
    for fixture in fixtures:
        home_team = team_map.get(fixture.team_h)
        away_team = team_map.get(fixture.team_a)
        home_momentum = _momentum_of(home_team)
        away_momentum = _momentum_of(away_team)

        narrative = resolve_fixture_narrative(
            home_momentum,
            away_momentum,
            started=fixture.started,
            finished=fixture.finished,
            home_goals=fixture.team_h_score,
            away_goals=fixture.team_a_score,
        )

        normalized.append(
            NormalizedFixture(
                id=fixture.id,
                event=fixture.event or 0,
                kickoff_time=fixture.kickoff_time or "",
                finished=fixture.finished,
                started=fixture.started,
                home_score=fixture.team_h_score,
                away_score=fixture.team_a_score,
                home_team=_fixture_team(fixture.team_h, home_team),
                away_team=_fixture_team(fixture.team_a, away_team),
                momentum_contrast=MomentumContrast(
                    home_score=home_momentum,
                    away_score=away_momentum,
                ),
                narrative_tag=narrative.tag,
                narrative_chips=narrative.chips,
                phase=narrative.phase,
            )
        )

    normalized.sort(key=lambda f: (not f.kickoff_time, f.kickoff_time))
    return normalized
