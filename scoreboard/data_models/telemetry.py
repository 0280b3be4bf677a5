"""
Telemetry data models for post-match snapshot ingestion.

Provides immutable views over the externally owned telemetry export. The wire
format is not redesigned here; decoding only checks that every counter the
engine consumes is present and numeric, and rejects the snapshot wholesale
otherwise.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from scoreboard.constants import TelemetryConstants
from scoreboard.utils.exceptions import ValidationError


def _coerce_counter(value: Any, column: str, where: str):
    # bool is an int subclass; a flag in a counter slot is a malformed feed
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{where}: counter '{column}' is not numeric ({value!r})")
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{where}: counter '{column}' must be a finite non-negative number ({value!r})")
    if column in TelemetryConstants.FLOAT_COUNTERS:
        return float(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{where}: counter '{column}' must be a whole number ({value!r})")
        return int(value)
    return value


@dataclass(frozen=True)
class PlayerTelemetry:
    """One per-player record of the snapshot, counters keyed by stat column."""
    uid: str
    player_name: str
    team_id: Optional[int]
    counters: Dict[str, Any] = field(hash=False)

    @property
    def rank(self) -> int:
        return self.counters['rank']

    @classmethod
    def from_record(cls, record: Any, index: int) -> 'PlayerTelemetry':
        where = f"TotalPlayerList[{index}]"
        if not isinstance(record, dict):
            raise ValidationError(f"{where} is not an object")
        if record.get('uId') in (None, ''):
            raise ValidationError(f"{where}: missing required field 'uId'")

        counters = {}
        for wire_name, column in TelemetryConstants.PLAYER_COUNTERS.items():
            if wire_name not in record:
                raise ValidationError(f"{where}: missing required counter '{wire_name}'")
            counters[column] = _coerce_counter(record[wire_name], column, where)

        return cls(
            uid=str(record['uId']),
            player_name=str(record.get('playerName') or ''),
            team_id=record.get('teamId'),
            counters=counters,
        )


@dataclass(frozen=True)
class TeamTelemetry:
    """Per-team summary record of the snapshot."""
    team_id: int
    team_name: str
    kill_num: int
    live_member_num: Optional[int] = None

    @classmethod
    def from_record(cls, record: Any, index: int) -> 'TeamTelemetry':
        where = f"TeamInfoList[{index}]"
        if not isinstance(record, dict):
            raise ValidationError(f"{where} is not an object")
        for name in TelemetryConstants.REQUIRED_TEAM_FIELDS:
            if name not in record:
                raise ValidationError(f"{where}: missing required field '{name}'")
        return cls(
            team_id=record['teamId'],
            team_name=str(record['teamName']),
            kill_num=_coerce_counter(record['killNum'], 'kill_num', where),
            live_member_num=record.get('liveMemberNum'),
        )


@dataclass(frozen=True)
class TelemetrySnapshot:
    """A decoded and structurally validated telemetry export."""
    game_id: str
    timing: Dict[str, Optional[str]] = field(hash=False)
    players: Tuple[PlayerTelemetry, ...]
    teams: Tuple[TeamTelemetry, ...]
    player_info: List[dict] = field(hash=False, repr=False)
    team_info: List[dict] = field(hash=False, repr=False)

    @classmethod
    def from_payload(cls, payload: Any) -> 'TelemetrySnapshot':
        """
        Decode a raw export into a snapshot.

        Accepts either the full export (``{"allinfo": {...}}``) or the inner
        object. Any missing or non-numeric counter rejects the whole snapshot.

        Raises:
            ValidationError: If the payload is structurally incomplete
        """
        if not isinstance(payload, dict):
            raise ValidationError("Telemetry payload must be an object")
        info = payload.get('allinfo', payload)
        if not isinstance(info, dict):
            raise ValidationError("Telemetry 'allinfo' must be an object")

        game_id = info.get('GameID')
        if game_id in (None, ''):
            raise ValidationError("Telemetry is missing required field 'GameID'")

        player_info = info.get('TotalPlayerList')
        team_info = info.get('TeamInfoList')
        if not isinstance(player_info, list):
            raise ValidationError("Telemetry is missing required list 'TotalPlayerList'")
        if not isinstance(team_info, list):
            raise ValidationError("Telemetry is missing required list 'TeamInfoList'")

        players = tuple(
            PlayerTelemetry.from_record(record, index)
            for index, record in enumerate(player_info)
        )
        teams = tuple(
            TeamTelemetry.from_record(record, index)
            for index, record in enumerate(team_info)
        )
        timing = {name: info.get(name) for name in TelemetryConstants.GLOBAL_TIMING_FIELDS}

        return cls(
            game_id=str(game_id),
            timing=timing,
            players=players,
            teams=teams,
            player_info=player_info,
            team_info=team_info,
        )
