"""Tests for fixture narrative resolution."""

import math

from app.services.narrative import resolve_fixture_narrative


class TestResolveFixtureNarrative:
    def test_missing_momentum_is_pending_in_any_phase(self):
        for started, finished in ((False, False), (True, False), (True, True)):
            narrative = resolve_fixture_narrative(None, 60, started, finished)

            assert narrative.phase == "pending"
            assert narrative.tag == "Momentum Pending"
            assert narrative.chips == ["Awaiting data"]

    def test_non_finite_momentum_is_pending(self):
        assert resolve_fixture_narrative(50, math.nan, False, False).phase == "pending"

    def test_upcoming_uses_threshold_tag(self):
        narrative = resolve_fixture_narrative(81, 56, started=False, finished=False)

        assert narrative.phase == "upcoming"
        assert narrative.tag == "Trap Game"
        assert narrative.chips == ["Big gap", "Home edge"]
        assert narrative.leader == "home"
        assert narrative.delta == 25

    def test_level_teams_get_no_edge_chip(self):
        narrative = resolve_fixture_narrative(50, 50, started=False, finished=False)

        assert narrative.tag == "Closer Than It Looks"
        assert narrative.chips == ["Fine margins"]
        assert narrative.leader == "level"

    def test_live(self):
        narrative = resolve_fixture_narrative(50, 62, started=True, finished=False)

        assert narrative.phase == "live"
        assert narrative.tag == "Unpredictable"
        assert narrative.chips == ["Swing game", "Away surge"]

    def test_finished_momentum_held(self):
        narrative = resolve_fixture_narrative(70, 40, True, True, home_goals=2, away_goals=0)

        assert narrative.phase == "finished"
        assert narrative.tag == "Post-Match Read"
        assert narrative.chips == ["Big gap", "Momentum held"]

    def test_finished_momentum_upset(self):
        narrative = resolve_fixture_narrative(70, 40, True, True, home_goals=0, away_goals=1)

        assert narrative.chips == ["Big gap", "Momentum upset"]

    def test_finished_draw_has_only_level_chip(self):
        narrative = resolve_fixture_narrative(45, 50, True, True, home_goals=1, away_goals=1)

        assert narrative.chips == ["Fine margins"]

    def test_chips_never_exceed_two(self):
        for args in ((10, 90, False, False), (10, 90, True, False), (10, 90, True, True, 3, 0)):
            assert len(resolve_fixture_narrative(*args).chips) <= 2
