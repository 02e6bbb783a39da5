"""Weekly signal strip: notable fixtures of a round, padded with team extremes."""

from app.schemas.insights import NormalizedTeam, SignalItem
from app.schemas.upstream import FplFixture

MAX_SIGNALS = 3
MISMATCH_MIN_GAP = 20
TRAP_MIN_GAP = 10
TRAP_MAX_GAP = 25

Pairing = tuple[FplFixture, NormalizedTeam, NormalizedTeam, int]


def _pairings(fixtures: list[FplFixture], teams: list[NormalizedTeam]) -> list[Pairing]:
    """Fixtures where both teams are known, with their momentum gap."""
    by_id = {t.id: t for t in teams}
    pairings = []
    for fixture in fixtures:
        home = by_id.get(fixture.team_h)
        away = by_id.get(fixture.team_a)
        if home is None or away is None:
            continue
        gap = abs(home.momentum.score - away.momentum.score)
        pairings.append((fixture, home, away, gap))
    return pairings


def _fixture_signal(kind: str, title: str, pairing: Pairing, delta_label: str) -> SignalItem:
    fixture, home, away, _ = pairing
    return SignalItem(
        kind=kind,
        title=title,
        subtitle=f"{home.short_name} vs {away.short_name}",
        home_team_id=home.id,
        away_team_id=away.id,
        fixture_id=fixture.id,
        delta_label=delta_label,
        href=f"/matchday/{fixture.id}",
    )


def find_mismatch(pairings: list[Pairing]) -> SignalItem | None:
    """Largest momentum gap, if it is at least 20."""
    if not pairings:
        return None
    best = max(pairings, key=lambda p: p[3])
    if best[3] < MISMATCH_MIN_GAP:
        return None
    return _fixture_signal("mismatch", "Biggest Mismatch", best, f"{best[3]} pts gap")


def find_closest(pairings: list[Pairing]) -> SignalItem | None:
    if not pairings:
        return None
    best = min(pairings, key=lambda p: p[3])
    return _fixture_signal("closest", "Tightest Contest", best, "Even match")


def find_trap(pairings: list[Pairing]) -> SignalItem | None:
    """First fixture where the away side leads by 10-25."""
    for pairing in pairings:
        _, home, away, gap = pairing
        if away.momentum.score > home.momentum.score and TRAP_MIN_GAP <= gap <= TRAP_MAX_GAP:
            return _fixture_signal("trap", "Potential Trap", pairing, "Upset watch")
    return None


def _mentions(signals: list[SignalItem], team: NormalizedTeam) -> bool:
    return any(team.short_name in s.subtitle for s in signals)


def get_weekly_signals(
    teams: list[NormalizedTeam],
    fixtures: list[FplFixture],
) -> list[SignalItem]:
    """Up to 3 signals: mismatch, closest and trap, then riser/faller fill-ins."""
    signals: list[SignalItem] = []
    pairings = _pairings(fixtures, teams)

    for finder in (find_mismatch, find_closest, find_trap):
        signal = finder(pairings)
        if signal is not None:
            signals.append(signal)

    if len(signals) < MAX_SIGNALS and teams:
        ranked = sorted(teams, key=lambda t: t.momentum.score, reverse=True)
        top, bottom = ranked[0], ranked[-1]
        if not _mentions(signals, top):
            signals.append(
                SignalItem(
                    kind="riser",
                    title="Top Momentum",
                    subtitle=top.name,
                    delta_label=f"{top.momentum.score} pts",
                    href=f"/teams/{top.id}",
                )
            )
        if bottom.id != top.id and not _mentions(signals, bottom):
            signals.append(
                SignalItem(
                    kind="faller",
                    title="Coldest Team",
                    subtitle=bottom.name,
                    delta_label=f"{bottom.momentum.score} pts",
                    href=f"/teams/{bottom.id}",
                )
            )

    return signals[:MAX_SIGNALS]
