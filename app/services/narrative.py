"""Fixture narrative resolution.

A fixture moves through pending -> upcoming -> live -> finished, driven by
the upstream ``started``/``finished`` flags. Pending (either momentum score
missing) overrides everything else.
"""

import math
from dataclasses import dataclass, field
from typing import Literal

from app.schemas.insights import FixturePhase
from app.services.scoring import generate_narrative_tag

Leader = Literal["home", "away", "level", "unknown"]

PENDING_TAG = "Momentum Pending"
POST_MATCH_TAG = "Post-Match Read"
LIVE_TAG = "Unpredictable"
AWAITING_DATA = "Awaiting data"

MAX_NARRATIVE_CHIPS = 2


@dataclass(slots=True)
class FixtureNarrative:
    tag: str
    phase: FixturePhase
    chips: list[str] = field(default_factory=list)
    delta: int = 0
    leader: Leader = "unknown"
    level_label: str = AWAITING_DATA


def _is_score(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def _level_label(gap: float) -> str:
    if gap >= 20:
        return "Big gap"
    if gap >= 10:
        return "Swing game"
    return "Fine margins"


def _leader(home: float, away: float) -> Leader:
    if home > away:
        return "home"
    if away > home:
        return "away"
    return "level"


def _edge_chip(leader: Leader) -> str | None:
    if leader == "home":
        return "Home edge"
    if leader == "away":
        return "Away surge"
    return None


def _unique(chips: list[str]) -> list[str]:
    return list(dict.fromkeys(chips))[:MAX_NARRATIVE_CHIPS]


def resolve_fixture_narrative(
    home: float | None,
    away: float | None,
    started: bool,
    finished: bool,
    home_goals: int | None = None,
    away_goals: int | None = None,
) -> FixtureNarrative:
    """Derive the narrative tag, phase and up to 2 chips for a fixture.

    Args:
        home: Home team momentum (None when unknown)
        away: Away team momentum (None when unknown)
        started: Upstream started flag
        finished: Upstream finished flag
        home_goals: Final/live home score, if any
        away_goals: Final/live away score, if any

    Returns:
        FixtureNarrative for the fixture's current phase
    """
    if not _is_score(home) or not _is_score(away):
        return FixtureNarrative(tag=PENDING_TAG, phase="pending", chips=[AWAITING_DATA])

    gap = abs(away - home)
    leader = _leader(home, away)
    level_label = _level_label(gap)
    delta = int(round(gap))

    if finished:
        chips = [level_label]
        if home_goals is not None and away_goals is not None and home_goals != away_goals:
            winner = "home" if home_goals > away_goals else "away"
            if leader != "level" and winner != leader:
                chips.append("Momentum upset")
            else:
                chips.append("Momentum held")
        return FixtureNarrative(
            tag=POST_MATCH_TAG,
            phase="finished",
            chips=_unique(chips),
            delta=delta,
            leader=leader,
            level_label=level_label,
        )

    chips = [level_label]
    edge = _edge_chip(leader)
    if edge:
        chips.append(edge)

    if started:
        return FixtureNarrative(
            tag=LIVE_TAG,
            phase="live",
            chips=_unique(chips),
            delta=delta,
            leader=leader,
            level_label=level_label,
        )

    return FixtureNarrative(
        tag=generate_narrative_tag(home, away),
        phase="upcoming",
        chips=_unique(chips),
        delta=delta,
        leader=leader,
        level_label=level_label,
    )
