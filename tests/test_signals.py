"""Tests for the weekly signal strip."""

from app.schemas.insights import NormalizedTeam, TeamMomentum, TeamSpark
from app.schemas.upstream import FplFixture
from app.services.scoring import get_momentum_label
from app.services.signals import get_weekly_signals
from tests.factories import make_fixture


def make_team_model(team_id: int, short_name: str, score: int) -> NormalizedTeam:
    return NormalizedTeam(
        id=team_id,
        code=team_id * 10,
        name=f"Team {short_name}",
        short_name=short_name,
        momentum=TeamMomentum(score=score, label=get_momentum_label(score), trend="flat"),
        spark=TeamSpark(last_n=[0]),
        chips=[],
    )


def fixture(fixture_id: int, home: int, away: int) -> FplFixture:
    return FplFixture.model_validate(make_fixture(fixture_id, 4, home, away))


TEAMS = [
    make_team_model(1, "AAA", 80),
    make_team_model(2, "BBB", 30),
    make_team_model(3, "CCC", 60),
    make_team_model(4, "DDD", 50),
]


class TestGetWeeklySignals:
    def test_mismatch_closest_and_trap(self):
        signals = get_weekly_signals(TEAMS, [fixture(1, 1, 2), fixture(2, 4, 3)])

        assert [s.kind for s in signals] == ["mismatch", "closest", "trap"]
        assert signals[0].subtitle == "AAA vs BBB"
        assert signals[0].delta_label == "50 pts gap"
        assert signals[0].href == "/matchday/1"
        assert signals[2].fixture_id == 2

    def test_small_gaps_have_no_mismatch(self):
        signals = get_weekly_signals(TEAMS, [fixture(1, 3, 4)])

        assert [s.kind for s in signals] == ["closest", "riser", "faller"]
        assert signals[1].href == "/teams/1"
        assert signals[2].href == "/teams/2"

    def test_no_fixtures_falls_back_to_team_extremes(self):
        signals = get_weekly_signals(TEAMS, [])

        assert [s.kind for s in signals] == ["riser", "faller"]
        assert signals[0].subtitle == "Team AAA"

    def test_fixtures_with_unknown_teams_are_skipped(self):
        signals = get_weekly_signals(TEAMS, [fixture(1, 1, 99)])

        assert all(s.fixture_id is None for s in signals)

    def test_teams_already_shown_are_not_repeated(self):
        signals = get_weekly_signals(TEAMS, [fixture(1, 1, 2)])

        # Both extremes already appear in the fixture signals
        assert [s.kind for s in signals] == ["mismatch", "closest"]

    def test_no_teams(self):
        assert get_weekly_signals([], []) == []

    def test_never_more_than_three(self):
        fixtures = [fixture(1, 1, 2), fixture(2, 4, 3), fixture(3, 3, 2)]

        assert len(get_weekly_signals(TEAMS, fixtures)) <= 3
