"""
Cumulative Ranking Calculator

Computes "standings after match k" over an ordered window of matches.

Team totals are re-derived from every match in the window: place points are
looked up per match with that match's own point system and summed, and the
total is always summed place points plus summed kills. Player MVP is computed
per match against that match's totals and then summed, so a player is never
normalised against the grand totals of matches with different lethality.
"""

from collections import defaultdict
from typing import Dict, List, Sequence

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.constants import MvpConstants
from scoreboard.database.models import PlayerStat, TeamStat
from scoreboard.data_models.results import MatchResult, PlayerResult, TeamResult
from scoreboard.operations.match_ranking import MatchRankingCalculator
from scoreboard.operations.point_system import PointSystemResolver
from scoreboard.utils.logger import setup_logger
from scoreboard.utils.ranking import RankingUtility

logger = setup_logger(__name__)


class CumulativeRankingCalculator(MatchRankingCalculator):
    """Ranks teams and players across an ordered sequence of matches"""

    def _accumulate_teams(
        self,
        stats: List[TeamStat],
        order: Dict[int, int],
        resolvers: Dict[int, PointSystemResolver]
    ) -> List[TeamResult]:
        totals: Dict[int, dict] = {}

        # Earliest match first so last_match_rank ends on the latest match
        for stat in sorted(stats, key=lambda s: (order[s.match_id], s.team_id)):
            entry = totals.setdefault(stat.team_id, {
                'team': self._team_name(stat.team),
                'kill': 0,
                'damage': 0.0,
                'place_point': 0,
                'wwcd': 0,
                'matches_played': 0,
                'last_match_rank': None,
            })
            entry['kill'] += stat.kill_num or 0
            entry['damage'] += stat.damage or 0.0
            entry['place_point'] += resolvers[stat.match_id].points_for(stat.rank)
            entry['wwcd'] += 1 if stat.rank == 1 else 0
            entry['matches_played'] += 1
            entry['last_match_rank'] = stat.rank

        results = [
            TeamResult(
                team_id=team_id,
                team=entry['team'],
                kill=entry['kill'],
                damage=entry['damage'],
                place_point=entry['place_point'],
                total_point=entry['place_point'] + entry['kill'],
                wwcd=entry['wwcd'],
                matches_played=entry['matches_played'],
                last_match_rank=entry['last_match_rank']
            )
            for team_id, entry in totals.items()
        ]
        return RankingUtility.assign_ranks(results, RankingUtility.cumulative_team_sort_key)

    def _accumulate_players(self, stats: List[PlayerStat]) -> List[PlayerResult]:
        match_totals = defaultdict(lambda: {'survival_time': 0.0, 'damage': 0.0, 'kills': 0})
        for stat in stats:
            match_total = match_totals[stat.match_id]
            match_total['survival_time'] += stat.survival_time or 0
            match_total['damage'] += stat.damage or 0
            match_total['kills'] += stat.kill_num or 0

        totals: Dict[int, dict] = {}
        for stat in stats:
            player = stat.player
            entry = totals.setdefault(stat.player_id, {
                'in_game_name': self._player_name(player),
                'uid': player.uid,
                'team_name': self._team_name(player.team),
                'kill': 0,
                'damage': 0.0,
                'survival_time': 0.0,
                'assists': 0,
                'heal': 0.0,
                'matches_played': 0,
                'mvp_share': 0.0,
            })
            entry['kill'] += stat.kill_num or 0
            entry['damage'] += stat.damage or 0.0
            entry['survival_time'] += stat.survival_time or 0.0
            entry['assists'] += stat.assists or 0
            entry['heal'] += stat.heal or 0.0
            entry['matches_played'] += 1

            match_total = match_totals[stat.match_id]
            entry['mvp_share'] += RankingUtility.mvp_share(
                stat.survival_time or 0, stat.damage or 0, stat.kill_num or 0,
                match_total['survival_time'], match_total['damage'], match_total['kills']
            )

        results = [
            PlayerResult(
                player_id=player_id,
                in_game_name=entry['in_game_name'],
                uid=entry['uid'],
                team_name=entry['team_name'],
                kill=entry['kill'],
                damage=entry['damage'],
                survival_time=entry['survival_time'],
                avg_survival_time=entry['survival_time'] / entry['matches_played'],
                assists=entry['assists'],
                heal=entry['heal'],
                matches_played=entry['matches_played'],
                mvp=RankingUtility.round_mvp(entry['mvp_share'] * MvpConstants.CUMULATIVE_SCALE)
            )
            for player_id, entry in totals.items()
        ]
        return RankingUtility.assign_ranks(results, RankingUtility.player_sort_key)

    async def calculate_cumulative_results(self, match_ids: Sequence[int]) -> MatchResult:
        """
        Rank teams and players across matches given earliest-first.

        Teams are ordered by total points, WWCD count, place points, kills,
        last match rank (lower first), matches played (fewer first) and name.

        Returns:
            MatchResult tagged MISSING for an empty window or a match without a
            point system, ERROR for unknown match ids or a database failure
        """
        match_ids = list(match_ids)
        if not match_ids:
            return MatchResult.missing("No matches uploaded yet")
        if len(set(match_ids)) != len(match_ids):
            return MatchResult.error("Duplicate match IDs provided")

        try:
            matches = await self._fetch_matches(match_ids)
            if len(matches) != len(match_ids):
                return MatchResult.error("Invalid match IDs provided")

            resolvers = {}
            for match_id, match in matches.items():
                resolver = PointSystemResolver.from_model(match.point_system)
                if resolver is None:
                    return MatchResult.missing(f"Point system not found for match {match_id}")
                resolvers[match_id] = resolver

            team_stats = await self._fetch_team_stats(match_ids)
            player_stats = await self._fetch_player_stats(match_ids)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load stats for matches {match_ids}: {e}", exc_info=True)
            return MatchResult.error("Error fetching overall results")

        order = {match_id: index for index, match_id in enumerate(match_ids)}
        return MatchResult.success(
            self._accumulate_teams(team_stats, order, resolvers),
            self._accumulate_players(player_stats)
        )
