"""
Match Ranking Calculator

Ranks the teams and players of a single uploaded match. Place points come
from the point system captured on the match at upload time, and disqualified
teams are filtered out at read time so a later disqualification applies to
historical matches as well.
"""

from typing import Dict, List, Sequence
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from scoreboard.constants import MvpConstants
from scoreboard.database.models import Match, PlayerStat, Player, PointSystem, Team, TeamStat
from scoreboard.data_models.results import MatchResult, PlayerResult, TeamResult
from scoreboard.operations.point_system import PointSystemResolver
from scoreboard.utils.logger import setup_logger
from scoreboard.utils.ranking import RankingUtility
from scoreboard.utils.text import repair_display_name

logger = setup_logger(__name__)


class MatchRankingCalculator:
    """Ranks one match's teams and players"""

    def __init__(self, session):
        """
        Initialize the calculator with a database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def _fetch_matches(self, match_ids: Sequence[int]) -> Dict[int, Match]:
        """Fetch matches with their captured point systems, keyed by id"""
        result = await self.session.execute(
            select(Match)
            .options(selectinload(Match.point_system).selectinload(PointSystem.entries))
            .where(Match.id.in_(list(match_ids)))
        )
        return {match.id: match for match in result.scalars().all()}

    async def _fetch_team_stats(self, match_ids: Sequence[int]) -> List[TeamStat]:
        """Fetch team stat rows of non-disqualified teams"""
        result = await self.session.execute(
            select(TeamStat)
            .join(TeamStat.team)
            .options(joinedload(TeamStat.team))
            .where(
                TeamStat.match_id.in_(list(match_ids)),
                Team.dq == False
            )
            .order_by(TeamStat.match_id, TeamStat.team_id)
        )
        return list(result.scalars().all())

    async def _fetch_player_stats(self, match_ids: Sequence[int]) -> List[PlayerStat]:
        """Fetch player stat rows whose team is not disqualified"""
        result = await self.session.execute(
            select(PlayerStat)
            .join(PlayerStat.player)
            .join(Player.team)
            .options(joinedload(PlayerStat.player).joinedload(Player.team))
            .where(
                PlayerStat.match_id.in_(list(match_ids)),
                Team.dq == False
            )
            .order_by(PlayerStat.match_id, PlayerStat.player_id)
        )
        return list(result.scalars().all())

    @staticmethod
    def _team_name(team: Team) -> str:
        return repair_display_name(team.name, "Unknown Team")

    @staticmethod
    def _player_name(player: Player) -> str:
        return repair_display_name(player.name, "Unknown Player")

    def _rank_teams(self, stats: List[TeamStat], resolver: PointSystemResolver) -> List[TeamResult]:
        results = []
        for stat in stats:
            place_point = resolver.points_for(stat.rank)
            results.append(TeamResult(
                team_id=stat.team_id,
                team=self._team_name(stat.team),
                kill=stat.kill_num or 0,
                damage=stat.damage or 0.0,
                place_point=place_point,
                total_point=place_point + (stat.kill_num or 0),
                wwcd=1 if stat.rank == 1 else 0,
                matches_played=1,
                last_match_rank=stat.rank
            ))
        return RankingUtility.assign_ranks(results, RankingUtility.match_team_sort_key)

    def _rank_players(self, stats: List[PlayerStat]) -> List[PlayerResult]:
        total_survival = sum(stat.survival_time or 0 for stat in stats)
        total_damage = sum(stat.damage or 0 for stat in stats)
        total_kills = sum(stat.kill_num or 0 for stat in stats)

        results = []
        for stat in stats:
            share = RankingUtility.mvp_share(
                stat.survival_time or 0, stat.damage or 0, stat.kill_num or 0,
                total_survival, total_damage, total_kills
            )
            results.append(PlayerResult(
                player_id=stat.player_id,
                in_game_name=self._player_name(stat.player),
                uid=stat.player.uid,
                team_name=self._team_name(stat.player.team),
                kill=stat.kill_num or 0,
                damage=stat.damage or 0.0,
                survival_time=stat.survival_time or 0.0,
                avg_survival_time=stat.survival_time or 0.0,  # one match played
                assists=stat.assists or 0,
                heal=stat.heal or 0.0,
                matches_played=1,
                mvp=RankingUtility.round_mvp(share * MvpConstants.SINGLE_MATCH_SCALE)
            ))
        return RankingUtility.assign_ranks(results, RankingUtility.player_sort_key)

    async def calculate_match_results(self, match_id: int) -> MatchResult:
        """
        Rank teams and players of one match.

        Teams are ordered by total points, place points, kills and name;
        players by MVP, kills, damage and survival time.

        Returns:
            MatchResult tagged MISSING when the match or its point system is
            absent, ERROR on a database failure, SUCCESS otherwise
        """
        try:
            matches = await self._fetch_matches([match_id])
            match = matches.get(match_id)
            if match is None:
                return MatchResult.missing(f"Match {match_id} not found")

            resolver = PointSystemResolver.from_model(match.point_system)
            if resolver is None:
                return MatchResult.missing(f"Point system not found for match {match_id}")

            team_stats = await self._fetch_team_stats([match_id])
            player_stats = await self._fetch_player_stats([match_id])
        except SQLAlchemyError as e:
            logger.error(f"Failed to load stats for match {match_id}: {e}", exc_info=True)
            return MatchResult.error(f"Error fetching results for match {match_id}")

        return MatchResult.success(
            self._rank_teams(team_stats, resolver),
            self._rank_players(player_stats)
        )
