"""
Point system resolution.

Translates a placement rank into tournament points from an event's configured
table. Tables need not be exhaustive: a rank without an entry scores zero.
"""

from typing import Dict, Mapping, Optional

from scoreboard.database.models import PointSystem


class PointSystemResolver:
    """Rank -> points lookup over one point system table."""

    def __init__(self, table: Mapping[int, int]):
        self._table: Dict[int, int] = dict(table)

    @classmethod
    def from_model(cls, point_system: Optional[PointSystem]) -> Optional['PointSystemResolver']:
        """Build a resolver from a loaded PointSystem, or None if there is none."""
        if point_system is None:
            return None
        return cls(point_system.as_table())

    def points_for(self, rank: Optional[int]) -> int:
        if rank is None:
            return 0
        return self._table.get(rank, 0)

    @property
    def table(self) -> Dict[int, int]:
        return dict(self._table)

    def __repr__(self):
        return f"<PointSystemResolver(entries={len(self._table)})>"
