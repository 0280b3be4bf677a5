"""
Group/Schedule merge.

A schedule may put several groups in one combined lobby. Schedules are
bucketed under a group key: the group's own id for a single-group schedule,
or a synthetic key joining the sorted member ids for a combined lobby, whose
display name reads "A vs B" and whose roster is the union of the members'
teams de-duplicated by name.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from scoreboard.constants import ScheduleConstants
from scoreboard.database.models import Group, Schedule


@dataclass(frozen=True)
class TeamSlot:
    """Roster line of a merged group."""
    slot: int
    team: str
    email: Optional[str]


@dataclass
class MergedGroup:
    """Schedules and roster collected under one group key."""
    id: str
    name: str
    member_ids: List[int]
    teams: List[TeamSlot] = field(default_factory=list)
    schedules: List[Schedule] = field(default_factory=list)

    @property
    def is_multi_group(self) -> bool:
        return len(self.member_ids) > 1

    @property
    def uploaded_schedules(self) -> List[Schedule]:
        """Schedules with a linked match, in match-number order"""
        return [schedule for schedule in self.schedules if schedule.match_id is not None]


def make_group_key(group_ids: Iterable[int]) -> str:
    """Key of a group or combined lobby: sorted member ids joined"""
    return ScheduleConstants.GROUP_KEY_SEPARATOR.join(str(group_id) for group_id in sorted(set(group_ids)))


def parse_group_key(group_key) -> List[int]:
    """
    Split a group key back into member group ids.

    Raises:
        ValueError: If the key is not a separator-joined list of integers
    """
    parts = str(group_key).split(ScheduleConstants.GROUP_KEY_SEPARATOR)
    try:
        return sorted({int(part) for part in parts})
    except ValueError:
        raise ValueError(f"Invalid group key '{group_key}'")


def _sorted_groups(groups: Sequence[Group]) -> List[Group]:
    return sorted(groups, key=lambda group: group.id)


def merge_rosters(groups: Sequence[Group]) -> List[TeamSlot]:
    """Union of the groups' teams, first occurrence of a name wins, ordered by slot"""
    roster: Dict[str, TeamSlot] = {}
    for group in _sorted_groups(groups):
        for team in sorted(group.teams, key=lambda t: (t.slot, t.id)):
            if team.name not in roster:
                roster[team.name] = TeamSlot(slot=team.slot, team=team.name, email=team.email)
    return sorted(roster.values(), key=lambda line: (line.slot, line.team))


def merge_schedule_groups(schedules: Iterable[Schedule]) -> Dict[str, MergedGroup]:
    """
    Bucket schedules by their group key.

    Args:
        schedules: Schedules with groups (and the groups' teams) loaded

    Returns:
        Group key -> MergedGroup, schedules within each in match-number order
    """
    merged: Dict[str, MergedGroup] = {}

    for schedule in schedules:
        groups = _sorted_groups(schedule.groups)
        if not groups:
            continue

        key = make_group_key(group.id for group in groups)
        if key not in merged:
            merged[key] = MergedGroup(
                id=key,
                name=ScheduleConstants.GROUP_NAME_SEPARATOR.join(group.name for group in groups),
                member_ids=[group.id for group in groups],
                teams=merge_rosters(groups)
            )
        merged[key].schedules.append(schedule)

    for group in merged.values():
        group.schedules.sort(key=lambda s: (s.match_no, s.id))

    return merged
