"""Scoring engine for hype, reality, feature and momentum scores.

Pure functions, no I/O. Every score is an integer in 0-100, most of them
percentile ranks against the current population:
- Hype: ownership, net transfers and price (45/35/20)
- Reality: points per minute, attacking output and clean sheets, with
  position-aware weights and a position-filtered population
- Features: threat, creativity, value (percentiles) and form (rescaled)
- Team momentum: form points, goal difference, goals for and clean sheets
  over a trailing window (35/25/25/15)
"""

import math
from dataclasses import dataclass

from app.schemas.insights import MomentumLabel, PlayerFeatures, PlayerTag, TrendDirection

# =============================================================================
# Constants
# =============================================================================

# Returned for an empty population
NEUTRAL_SCORE = 50

# Position constants (FPL element_type)
POSITION_GKP = 1
POSITION_DEF = 2
POSITION_MID = 3
POSITION_FWD = 4

HYPE_WEIGHTS = {"ownership": 0.45, "net_transfers": 0.35, "price": 0.20}
MOMENTUM_WEIGHTS = {"form": 0.35, "goal_trend": 0.25, "attack": 0.25, "defense": 0.15}

# Position subgroups this small fall back to the full population
MIN_POSITION_POPULATION = 10

# Form points available per fixture (a win)
WIN_POINTS = 3
MAX_FORM_POINTS = 15

KEY_DIFFERENCE_THRESHOLD = 10
SIGNIFICANT_DIFFERENCE = 25
MAX_KEY_DIFFERENCES = 3
SIMILAR_PROFILES = "Very similar profiles across all dimensions"

FEATURE_LABELS: dict[str, str] = {
    "threat": "goal threat",
    "creativity": "creativity",
    "value": "value",
    "form": "form",
}

MAX_CHIPS = 3


@dataclass(slots=True)
class HypeInputs:
    selected_by_percent: float
    transfers_in: int
    transfers_out: int
    now_cost: int

    @property
    def net_transfers(self) -> int:
        return self.transfers_in - self.transfers_out


@dataclass(slots=True)
class RealityInputs:
    total_points: int
    minutes: int
    goals_scored: int
    assists: int
    bonus: int
    clean_sheets: int
    position: int  # 1=GKP, 2=DEF, 3=MID, 4=FWD

    @property
    def attack_output(self) -> int:
        return self.goals_scored * 4 + self.assists * 3 + self.bonus


@dataclass(slots=True)
class FeatureInputs:
    threat: float
    creativity: float
    influence: float
    form: float
    now_cost: int
    total_points: int
    minutes: int

    @property
    def value_ratio(self) -> float:
        """Total points per million of cost."""
        cost_in_millions = self.now_cost / 10
        return self.total_points / cost_in_millions if cost_in_millions > 0 else 0.0


@dataclass(slots=True)
class TeamMomentumInputs:
    form_points: int  # W=3, D=1, L=0 over the window
    goals_for: int
    goals_against: int
    clean_sheets: int
    fixture_count: int

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against


# =============================================================================
# 1. Core Utilities
# =============================================================================


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_score(value: float) -> int:
    """Round to the nearest integer (halves up) and clamp to 0-100."""
    if math.isnan(value):
        return NEUTRAL_SCORE
    return max(0, min(100, _round_half_up(value)))


def percentile_rank(value: float, population: list[float]) -> int:
    """Percentile rank of a value within a population.

    Uses the fraction of the population strictly below the value.

    Args:
        value: The value to rank
        population: All values in the distribution

    Returns:
        Integer 0-100, or 50 for an empty population
    """
    if not population:
        return NEUTRAL_SCORE
    count_below = sum(1 for v in population if v < value)
    return clamp_score(count_below / len(population) * 100)


def normalize_to_scale(value: float, minimum: float, maximum: float) -> int:
    """Linear rescale of value from [minimum, maximum] to 0-100 (50 if flat)."""
    if maximum == minimum:
        return NEUTRAL_SCORE
    return clamp_score((value - minimum) / (maximum - minimum) * 100)


# =============================================================================
# 2. Player Scores
# =============================================================================


def calculate_hype_score(inputs: HypeInputs, population: list[HypeInputs]) -> int:
    """Public perception: ownership 45%, net transfers 35%, price 20%."""
    ownership = percentile_rank(
        inputs.selected_by_percent, [p.selected_by_percent for p in population]
    )
    net_transfers = percentile_rank(
        inputs.net_transfers, [p.net_transfers for p in population]
    )
    price = percentile_rank(inputs.now_cost, [p.now_cost for p in population])

    return clamp_score(
        ownership * HYPE_WEIGHTS["ownership"]
        + net_transfers * HYPE_WEIGHTS["net_transfers"]
        + price * HYPE_WEIGHTS["price"]
    )


def _attack_weight(position: int) -> float:
    if position == POSITION_FWD:
        return 0.5
    if position == POSITION_MID:
        return 0.4
    return 0.2


def _defense_weight(position: int) -> float:
    return 0.3 if position in (POSITION_GKP, POSITION_DEF) else 0.1


def calculate_reality_score(inputs: RealityInputs, population: list[RealityInputs]) -> int:
    """Statistical output with position-aware weights.

    The comparison population is the player's position group when it has more
    than 10 members, otherwise everyone.
    """
    same_position = [p for p in population if p.position == inputs.position]
    compare = same_position if len(same_position) > MIN_POSITION_POPULATION else population

    ppm = inputs.total_points / inputs.minutes if inputs.minutes > 0 else 0.0
    all_ppm = [p.total_points / p.minutes for p in compare if p.minutes > 0]
    ppm_score = percentile_rank(ppm, all_ppm)

    attack_score = percentile_rank(inputs.attack_output, [p.attack_output for p in compare])
    cs_score = percentile_rank(inputs.clean_sheets, [p.clean_sheets for p in compare])

    attack_weight = _attack_weight(inputs.position)
    defense_weight = _defense_weight(inputs.position)
    consistency_weight = 1 - attack_weight - defense_weight

    return clamp_score(
        ppm_score * consistency_weight
        + attack_score * attack_weight
        + cs_score * defense_weight
    )


def calculate_features(inputs: FeatureInputs, population: list[FeatureInputs]) -> PlayerFeatures:
    """Threat/creativity percentiles, form rescaled from 0-10, value percentile."""
    threat = percentile_rank(inputs.threat, [p.threat for p in population])
    creativity = percentile_rank(inputs.creativity, [p.creativity for p in population])
    form = clamp_score(inputs.form * 10)
    value = percentile_rank(
        inputs.value_ratio, [p.value_ratio for p in population if p.now_cost > 0]
    )
    return PlayerFeatures(threat=threat, creativity=creativity, value=value, form=form)


# =============================================================================
# 3. Team Momentum
# =============================================================================


def calculate_team_momentum(
    inputs: TeamMomentumInputs,
    population: list[TeamMomentumInputs],
) -> int:
    """Weighted momentum composite over the trailing fixture window."""
    max_points = min(inputs.fixture_count * WIN_POINTS, MAX_FORM_POINTS)
    form_score = normalize_to_scale(inputs.form_points, 0, max_points)
    goal_trend = percentile_rank(
        inputs.goal_difference, [t.goal_difference for t in population]
    )
    attack = percentile_rank(inputs.goals_for, [t.goals_for for t in population])
    defense = normalize_to_scale(inputs.clean_sheets, 0, inputs.fixture_count)

    return clamp_score(
        form_score * MOMENTUM_WEIGHTS["form"]
        + goal_trend * MOMENTUM_WEIGHTS["goal_trend"]
        + attack * MOMENTUM_WEIGHTS["attack"]
        + defense * MOMENTUM_WEIGHTS["defense"]
    )


def get_momentum_label(score: int) -> MomentumLabel:
    """Hard threshold bands. "Watchlist" and "Stable" are never produced."""
    if score >= 75:
        return "On Fire"
    if score >= 60:
        return "Rising"
    if score >= 40:
        return "Unstable"
    return "Cooling"


def get_trend_direction(current: int, previous: int) -> TrendDirection:
    delta = current - previous
    if delta > 5:
        return "up"
    if delta < -5:
        return "down"
    return "flat"


# =============================================================================
# 4. Tags and Chips
# =============================================================================


def assign_player_tags(hype: int, reality: int, net_transfer_rank: int) -> list[PlayerTag]:
    """Rule-ordered tags; a player always carries at least one."""
    tags: list[PlayerTag] = []

    if reality >= 55 and hype < 40:
        tags.append("Undervalued")
    if hype >= 60 and reality < 45:
        tags.append("Overhyped")
    if net_transfer_rank >= 75:
        tags.append("Trending")
    if not tags and reality >= 50 and 35 <= hype <= 75:
        tags.append("Reliable")

    return tags or ["Reliable"]


def generate_player_chips(features: PlayerFeatures, hype: int, reality: int) -> list[str]:
    chips = []
    if features.form >= 70:
        chips.append("Hot form")
    if features.value >= 75:
        chips.append("Great value")
    if features.threat >= 75:
        chips.append("Goal threat")
    if features.creativity >= 75:
        chips.append("Creative force")
    if hype > reality + 15:
        chips.append("Price risk")
    if reality > hype + 15:
        chips.append("Under radar")
    if features.form < 30:
        chips.append("Out of form")
    return chips[:MAX_CHIPS]


def generate_team_chips(score: int, stats: TeamMomentumInputs) -> list[str]:
    chips = []
    games = max(stats.fixture_count, 1)
    avg_for = stats.goals_for / games
    avg_against = stats.goals_against / games

    if avg_for >= 1.5:
        chips.append("Goals flowing")
    if stats.clean_sheets >= math.ceil(stats.fixture_count * 0.4):
        chips.append("Solid defense")
    if avg_against >= 2:
        chips.append("Leaky at back")
    if score >= 75:
        chips.append("Peak form")
    elif score >= 60:
        chips.append("Building momentum")
    if score < 40:
        chips.append("Struggling")
    return chips[:MAX_CHIPS]


# =============================================================================
# 5. Fixture Narrative
# =============================================================================


def generate_narrative_tag(home: float | None, away: float | None) -> str:
    """Pre-match narrative from the two momentum scores.

    Thresholds are evaluated in order; the first match wins. A missing or
    non-finite score short-circuits to "Momentum Pending".
    """
    if not _is_finite(home) or not _is_finite(away):
        return "Momentum Pending"

    diff = away - home
    gap = abs(diff)
    average = (home + away) / 2

    if gap < 10:
        return "Closer Than It Looks"
    if home >= 70 and away >= 70:
        return "Momentum Clash"
    if home < 40 and away < 40:
        return "Could Get Chaotic"
    if gap >= 25:
        return "Trap Game"
    if average >= 60:
        return "Form Collision"
    return "Unpredictable"


def _is_finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


# =============================================================================
# 6. Comparison
# =============================================================================


def generate_key_differences(
    features_a: PlayerFeatures,
    features_b: PlayerFeatures,
    name_a: str,
    name_b: str,
) -> list[str]:
    """Up to 3 statements for the largest feature gaps (|delta| >= 10)."""
    deltas = [
        (label, getattr(features_a, key) - getattr(features_b, key))
        for key, label in FEATURE_LABELS.items()
    ]
    # Stable sort keeps dimension order for equal gaps
    deltas.sort(key=lambda item: abs(item[1]), reverse=True)

    differences = []
    for label, delta in deltas[:MAX_KEY_DIFFERENCES]:
        if abs(delta) < KEY_DIFFERENCE_THRESHOLD:
            continue
        better = name_a if delta > 0 else name_b
        margin = "significantly" if abs(delta) >= SIGNIFICANT_DIFFERENCE else "notably"
        differences.append(f"{better} has {margin} higher {label}")

    return differences or [SIMILAR_PROFILES]
