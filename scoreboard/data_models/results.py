"""
Result data models for match, cumulative and group standings.

Provides immutable data transfer objects handed to the public read surface.
Every aggregation outcome is tagged with a ResultStatus instead of raising.
"""

from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from scoreboard.utils.exceptions import DiagnosticWarning


class ResultStatus(Enum):
    SUCCESS = "success"
    MISSING = "missing"  # Nothing uploaded yet; not an error
    ERROR = "error"


@dataclass(frozen=True)
class TeamResult:
    """Single team standings row."""
    team_id: int
    team: str
    kill: int
    damage: float
    place_point: int
    total_point: int
    wwcd: int
    matches_played: int
    last_match_rank: Optional[int] = None
    c_rank: int = 0


@dataclass(frozen=True)
class PlayerResult:
    """Single player standings row."""
    player_id: int
    in_game_name: str
    uid: str
    team_name: str
    kill: int
    damage: float
    survival_time: float
    avg_survival_time: float
    assists: int
    heal: float
    matches_played: int
    mvp: float
    c_rank: int = 0


@dataclass(frozen=True)
class MatchResult:
    """Ranked teams and players for one match or a window of matches."""
    status: ResultStatus
    message: str = ""
    team_results: Tuple[TeamResult, ...] = ()
    player_results: Tuple[PlayerResult, ...] = ()

    @classmethod
    def success(cls, team_results, player_results) -> 'MatchResult':
        return cls(ResultStatus.SUCCESS, "Successful", tuple(team_results), tuple(player_results))

    @classmethod
    def missing(cls, message: str) -> 'MatchResult':
        return cls(ResultStatus.MISSING, message)

    @classmethod
    def error(cls, message: str) -> 'MatchResult':
        return cls(ResultStatus.ERROR, message)

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass(frozen=True)
class TeamView:
    """Team-only projection of a result."""
    rows: Tuple[TeamResult, ...]
    kind: str = "team"


@dataclass(frozen=True)
class PlayerView:
    """Player-only projection of a result."""
    rows: Tuple[PlayerResult, ...]
    kind: str = "player"


ResultView = Union[TeamView, PlayerView]


def select_view(result: MatchResult, kind: str) -> ResultView:
    """Project a result onto its team or player side."""
    if kind == "team":
        return TeamView(rows=result.team_results)
    if kind == "player":
        return PlayerView(rows=result.player_results)
    raise ValueError("kind must be 'team' or 'player'")


@dataclass(frozen=True)
class ScheduleResult:
    """One scheduled match with its own result and the standings after it."""
    schedule_id: int
    match_no: int
    map_name: str
    match_data: MatchResult
    after_match_data: MatchResult


@dataclass(frozen=True)
class GroupResults:
    """Per-schedule results of a lobby group, as served publicly."""
    status: ResultStatus
    group_id: str
    name: str = ""
    is_multi_group: bool = False
    schedules: Tuple[ScheduleResult, ...] = ()
    message: str = ""

    @classmethod
    def missing(cls, group_id: str, message: str) -> 'GroupResults':
        return cls(ResultStatus.MISSING, group_id, message=message)

    @classmethod
    def error(cls, group_id: str, message: str) -> 'GroupResults':
        return cls(ResultStatus.ERROR, group_id, message=message)

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        for schedule in data['schedules']:
            schedule['match_data']['status'] = schedule['match_data']['status'].value
            schedule['after_match_data']['status'] = schedule['after_match_data']['status'].value
        return data


@dataclass(frozen=True)
class EventSummary:
    """Public event tree: stages and their groups."""
    id: int
    name: str
    stages: List[dict] = field(default_factory=list)


@dataclass(frozen=True)
class IngestReport:
    """Outcome of a successful telemetry ingest."""
    match_id: int
    game_id: str
    schedule_id: int
    players_recorded: int
    teams_recorded: int
    unregistered_uids: Tuple[str, ...] = ()
    warnings: Tuple[DiagnosticWarning, ...] = ()


@dataclass(frozen=True)
class UploadOutcome:
    """Tagged ingest result for callers that must not see exceptions."""
    status: str
    message: str
    report: Optional[IngestReport] = None
