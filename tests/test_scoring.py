"""Unit tests for the scoring engine."""

import math

import pytest

from app.schemas.insights import PlayerFeatures
from app.services.scoring import (
    SIMILAR_PROFILES,
    FeatureInputs,
    HypeInputs,
    RealityInputs,
    TeamMomentumInputs,
    assign_player_tags,
    calculate_features,
    calculate_hype_score,
    calculate_reality_score,
    calculate_team_momentum,
    clamp_score,
    generate_key_differences,
    generate_narrative_tag,
    generate_player_chips,
    generate_team_chips,
    get_momentum_label,
    get_trend_direction,
    normalize_to_scale,
    percentile_rank,
)


def features(threat=50, creativity=50, value=50, form=50) -> PlayerFeatures:
    return PlayerFeatures(threat=threat, creativity=creativity, value=value, form=form)


class TestCoreUtilities:
    """Tests for clamp, percentile and rescale helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [(50.5, 51), (2.5, 3), (49.4, 49), (-3, 0), (150, 100), (math.nan, 50)],
    )
    def test_clamp_score(self, value, expected):
        assert clamp_score(value) == expected

    def test_percentile_counts_strictly_below(self):
        assert percentile_rank(5, [1, 2, 3, 4, 5]) == 80
        assert percentile_rank(1, [1, 2, 3, 4, 5]) == 0

    def test_percentile_ties_share_rank(self):
        assert percentile_rank(3, [3, 3, 3, 3]) == 0

    def test_percentile_empty_population_is_neutral(self):
        assert percentile_rank(10, []) == 50

    def test_percentile_is_monotonic(self):
        population = [0.5, 1.0, 7.2, 3.3, 9.9, 4.1]
        ranks = [percentile_rank(v, population) for v in sorted(population)]

        assert ranks == sorted(ranks)
        assert all(0 <= r <= 100 for r in ranks)

    def test_normalize_to_scale(self):
        assert normalize_to_scale(5, 0, 10) == 50
        assert normalize_to_scale(15, 0, 10) == 100
        assert normalize_to_scale(3, 3, 3) == 50


class TestHypeScore:
    def test_top_of_every_dimension_scores_high(self):
        population = [
            HypeInputs(selected_by_percent=i, transfers_in=i * 100, transfers_out=0, now_cost=40 + i)
            for i in range(20)
        ]

        score = calculate_hype_score(population[-1], population)

        assert score == 95
        assert score >= 85

    def test_bottom_of_every_dimension_scores_zero(self):
        population = [
            HypeInputs(selected_by_percent=i, transfers_in=i, transfers_out=0, now_cost=40 + i)
            for i in range(5)
        ]

        assert calculate_hype_score(population[0], population) == 0

    def test_net_transfers(self):
        assert HypeInputs(1.0, 300, 500, 50).net_transfers == -200


class TestRealityScore:
    def _mid(self, i: int) -> RealityInputs:
        return RealityInputs(
            total_points=i * 10 + 10,
            minutes=900,
            goals_scored=i,
            assists=0,
            bonus=0,
            clean_sheets=i,
            position=3,
        )

    def test_large_position_group_is_ranked_alone(self):
        """With more than 10 midfielders, outliers in other positions don't count."""
        mids = [self._mid(i) for i in range(11)]
        keeper = RealityInputs(
            total_points=500, minutes=900, goals_scored=50, assists=50,
            bonus=50, clean_sheets=50, position=1,
        )

        assert calculate_reality_score(mids[-1], mids + [keeper]) == 91

    def test_small_position_group_uses_everyone(self):
        mids = [self._mid(i) for i in range(3)]
        keeper = RealityInputs(
            total_points=500, minutes=900, goals_scored=50, assists=50,
            bonus=50, clean_sheets=50, position=1,
        )

        assert calculate_reality_score(mids[-1], mids + [keeper]) == 50

    def test_zero_minutes(self):
        """No one with minutes leaves the points-per-minute rank neutral."""
        player = RealityInputs(0, 0, 0, 0, 0, 0, position=2)

        assert calculate_reality_score(player, [player]) == 25


class TestFeatures:
    def test_form_rescaled_from_ten(self):
        player = FeatureInputs(
            threat=10, creativity=10, influence=10, form=7.5,
            now_cost=50, total_points=20, minutes=90,
        )

        result = calculate_features(player, [player])

        assert result.form == 75
        assert result.threat == 0

    def test_value_ratio_ignores_zero_cost(self):
        free = FeatureInputs(0, 0, 0, 0, now_cost=0, total_points=10, minutes=0)

        assert free.value_ratio == 0.0


class TestTeamMomentum:
    def test_perfect_record_against_weaker_teams(self):
        best = TeamMomentumInputs(form_points=15, goals_for=12, goals_against=0,
                                  clean_sheets=5, fixture_count=5)
        worst = TeamMomentumInputs(form_points=0, goals_for=1, goals_against=10,
                                   clean_sheets=0, fixture_count=5)
        population = [best, worst]

        # form 100, goal trend 50, attack 50, defense 100
        assert calculate_team_momentum(best, population) == 75
        assert calculate_team_momentum(worst, population) == 0

    def test_no_fixtures_is_low(self):
        empty = TeamMomentumInputs(0, 0, 0, 0, fixture_count=0)

        # Flat form and defense scales fall back to 50
        assert calculate_team_momentum(empty, [empty]) == 25

    @pytest.mark.parametrize(
        "score,label",
        [(100, "On Fire"), (75, "On Fire"), (74, "Rising"), (60, "Rising"),
         (59, "Unstable"), (40, "Unstable"), (39, "Cooling"), (0, "Cooling")],
    )
    def test_momentum_label_bands(self, score, label):
        assert get_momentum_label(score) == label

    def test_trend_direction(self):
        assert get_trend_direction(70, 60) == "up"
        assert get_trend_direction(60, 70) == "down"
        assert get_trend_direction(62, 60) == "flat"


class TestTagsAndChips:
    def test_undervalued(self):
        assert assign_player_tags(hype=30, reality=60, net_transfer_rank=50) == ["Undervalued"]

    def test_overhyped_and_trending(self):
        assert assign_player_tags(hype=70, reality=40, net_transfer_rank=80) == [
            "Overhyped",
            "Trending",
        ]

    def test_reliable(self):
        assert assign_player_tags(hype=50, reality=50, net_transfer_rank=50) == ["Reliable"]

    def test_always_at_least_one_tag(self):
        assert assign_player_tags(hype=20, reality=30, net_transfer_rank=10) == ["Reliable"]

    def test_player_chips_capped_at_three(self):
        chips = generate_player_chips(features(80, 80, 80, 80), hype=50, reality=50)

        assert chips == ["Hot form", "Great value", "Goal threat"]

    def test_player_chips_risk_and_form(self):
        chips = generate_player_chips(features(form=20), hype=80, reality=40)

        assert chips == ["Price risk", "Out of form"]

    def test_team_chips(self):
        stats = TeamMomentumInputs(form_points=12, goals_for=10, goals_against=2,
                                   clean_sheets=3, fixture_count=5)

        assert generate_team_chips(80, stats) == ["Goals flowing", "Solid defense", "Peak form"]

    def test_struggling_team_chips(self):
        stats = TeamMomentumInputs(form_points=0, goals_for=2, goals_against=11,
                                   clean_sheets=0, fixture_count=5)

        assert generate_team_chips(10, stats) == ["Leaky at back", "Struggling"]


class TestNarrativeTag:
    @pytest.mark.parametrize(
        "home,away,tag",
        [
            (50, 55, "Closer Than It Looks"),
            (75, 90, "Momentum Clash"),
            (20, 35, "Could Get Chaotic"),
            (30, 60, "Trap Game"),
            (55, 70, "Form Collision"),
            (45, 58, "Unpredictable"),
        ],
    )
    def test_threshold_table(self, home, away, tag):
        assert generate_narrative_tag(home, away) == tag

    @pytest.mark.parametrize("home,away", [(None, 50), (50, None), (math.nan, 50), (50, math.inf)])
    def test_missing_momentum_is_pending(self, home, away):
        assert generate_narrative_tag(home, away) == "Momentum Pending"


class TestKeyDifferences:
    def test_largest_gaps_first(self):
        result = generate_key_differences(
            features(threat=80, form=60), features(), "Saka", "Palmer"
        )

        assert result == [
            "Saka has significantly higher goal threat",
            "Saka has notably higher form",
        ]

    def test_favours_second_player_when_negative(self):
        result = generate_key_differences(features(), features(creativity=65), "A", "B")

        assert result == ["B has notably higher creativity"]

    def test_identical_players(self):
        assert generate_key_differences(features(), features(), "A", "B") == [SIMILAR_PROFILES]

    def test_similar_profiles(self):
        result = generate_key_differences(features(), features(value=55), "A", "B")

        assert result == [SIMILAR_PROFILES]

    def test_at_most_three(self):
        result = generate_key_differences(
            features(90, 90, 90, 90), features(10, 10, 10, 10), "A", "B"
        )

        assert len(result) == 3
