"""
Shared ranking utilities for single-match and cumulative standings.

Keeps the tie-break orders in one place so both aggregators produce the same
deterministic total order.
"""

from dataclasses import replace
from typing import Iterable, List, Tuple, TypeVar

from scoreboard.constants import MvpConstants
from scoreboard.data_models.results import PlayerResult, TeamResult

T = TypeVar('T', TeamResult, PlayerResult)


class RankingUtility:
    """Shared ranking logic for consistent tie-break ordering."""

    @staticmethod
    def match_team_sort_key(result: TeamResult) -> Tuple:
        """totalPoint, placePoint, kills descending, then team name ascending."""
        return (
            -result.total_point,
            -result.place_point,
            -result.kill,
            result.team,
            result.team_id,
        )

    @staticmethod
    def cumulative_team_sort_key(result: TeamResult) -> Tuple:
        """
        totalPoint, wwcd, placePoint, kills descending; then last match rank
        and matches played ascending; then team name ascending.
        """
        last_rank = result.last_match_rank if result.last_match_rank is not None else float('inf')
        return (
            -result.total_point,
            -result.wwcd,
            -result.place_point,
            -result.kill,
            last_rank,
            result.matches_played,
            result.team,
            result.team_id,
        )

    @staticmethod
    def player_sort_key(result: PlayerResult) -> Tuple:
        """mvp, kills, damage, survival time descending."""
        return (
            -result.mvp,
            -result.kill,
            -result.damage,
            -result.survival_time,
            result.in_game_name,
            result.player_id,
        )

    @staticmethod
    def assign_ranks(results: Iterable[T], sort_key) -> List[T]:
        """Sort results and stamp a contiguous 1-based c_rank."""
        ordered = sorted(results, key=sort_key)
        return [replace(result, c_rank=index + 1) for index, result in enumerate(ordered)]

    @staticmethod
    def mvp_share(
        survival_time: float,
        damage: float,
        kills: float,
        total_survival_time: float,
        total_damage: float,
        total_kills: float
    ) -> float:
        """
        Weighted share of one match's survival, damage and kills, in [0, 1].

        A resource nobody produced in the match contributes nothing.
        """
        def ratio(value: float, total: float) -> float:
            return value / total if total else 0.0

        return (
            ratio(survival_time, total_survival_time) * MvpConstants.SURVIVAL_WEIGHT
            + ratio(damage, total_damage) * MvpConstants.DAMAGE_WEIGHT
            + ratio(kills, total_kills) * MvpConstants.KILL_WEIGHT
        )

    @staticmethod
    def round_mvp(value: float) -> float:
        return round(value, MvpConstants.DECIMALS)
