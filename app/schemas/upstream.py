"""Pydantic models validating raw FPL upstream payloads.

Validation happens once, at the ingestion boundary. Optional upstream fields
map to explicit defaults here (numbers -> 0, percentage/index strings -> "0"),
including when the upstream sends ``null``, so nothing downstream has to treat
a missing field as a runtime case. Required fields that are missing or of the
wrong shape raise ``pydantic.ValidationError``, which the client treats as a
failed fetch.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, model_validator


class FplModel(BaseModel):
    """Base model: ignores unknown fields, maps null to the field default."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _null_to_default(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        defaulted = {
            name
            for name, field in cls.model_fields.items()
            if not field.is_required() and field.default is not None
        }
        return {k: v for k, v in data.items() if not (v is None and k in defaulted)}


# =============================================================================
# Bootstrap-static
# =============================================================================


class FplEvent(FplModel):
    """A gameweek."""

    id: int
    name: str
    deadline_time: str
    finished: bool
    is_current: bool
    is_next: bool


class FplTeam(FplModel):
    id: int
    code: int = 0
    name: str
    short_name: str
    strength: int = 3
    strength_overall_home: int | None = None
    strength_overall_away: int | None = None


class FplElement(FplModel):
    """A player as listed in bootstrap-static."""

    id: int
    web_name: str
    first_name: str = ""
    second_name: str = ""
    photo: str = ""
    team: int
    element_type: int  # 1=GKP, 2=DEF, 3=MID, 4=FWD
    now_cost: int  # Price * 10
    selected_by_percent: str = "0"
    transfers_in_event: int = 0
    transfers_out_event: int = 0
    total_points: int = 0
    goals_scored: int = 0
    assists: int = 0
    bonus: int = 0
    minutes: int = 0
    form: str = "0"
    ict_index: str = "0"
    threat: str = "0"
    creativity: str = "0"
    influence: str = "0"
    clean_sheets: int = 0
    saves: int = 0
    yellow_cards: int = 0
    red_cards: int = 0


class FplElementType(FplModel):
    id: int
    singular_name: str
    singular_name_short: str
    plural_name: str = ""


class FplBootstrapStatic(FplModel):
    events: list[FplEvent]
    teams: list[FplTeam]
    elements: list[FplElement]
    element_types: list[FplElementType]


# =============================================================================
# Fixtures
# =============================================================================


class FplFixture(FplModel):
    id: int
    event: int | None
    kickoff_time: str | None
    team_h: int
    team_a: int
    team_h_score: int | None
    team_a_score: int | None
    finished: bool
    started: bool = False
    finished_provisional: bool = False
    team_h_difficulty: int | None = None
    team_a_difficulty: int | None = None


# =============================================================================
# Element summary (per-player history)
# =============================================================================


class FplPlayerHistory(FplModel):
    """One past fixture for a player."""

    element: int
    fixture: int
    round: int
    minutes: int
    goals_scored: int
    assists: int
    bonus: int
    total_points: int
    threat: str = "0"
    creativity: str = "0"
    influence: str = "0"
    ict_index: str = "0"
    clean_sheets: int = 0
    saves: int = 0
    bps: int = 0


class FplPlayerFixture(FplModel):
    """One upcoming fixture for a player."""

    event: int | None = None  # None while unscheduled
    is_home: bool
    difficulty: int


class FplPastSeason(FplModel):
    season_name: str
    total_points: int


class FplElementSummary(FplModel):
    history: list[FplPlayerHistory]
    fixtures: list[FplPlayerFixture]
    history_past: list[FplPastSeason] = []


BOOTSTRAP_ADAPTER: TypeAdapter[FplBootstrapStatic] = TypeAdapter(FplBootstrapStatic)
FIXTURES_ADAPTER: TypeAdapter[list[FplFixture]] = TypeAdapter(list[FplFixture])
ELEMENT_SUMMARY_ADAPTER: TypeAdapter[FplElementSummary] = TypeAdapter(FplElementSummary)
