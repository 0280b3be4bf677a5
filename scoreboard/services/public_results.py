"""
Public results service.

Read surface consumed by the presentation layer: the public event tree,
per-group results served through the result cache, the set of groups still
waiting for an upload, per-schedule result lookups and cache warm-up.
"""

import asyncio
from typing import Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from scoreboard.database.database import Database
from scoreboard.database.models import Schedule
from scoreboard.data_models.results import EventSummary, GroupResults, MatchResult, ResultStatus
from scoreboard.operations.cumulative_ranking import CumulativeRankingCalculator
from scoreboard.operations.group_merge import TeamSlot, make_group_key, merge_schedule_groups, parse_group_key
from scoreboard.operations.match_ranking import MatchRankingCalculator
from scoreboard.services.base import BaseService
from scoreboard.services.result_cache import ResultCacheService
from scoreboard.utils.logger import setup_logger

logger = setup_logger(__name__)


class PublicResultsService(BaseService):
    """Service for the public results surface."""

    def __init__(self, database: Database, cache: ResultCacheService = None):
        super().__init__(database.session_factory)
        self.db = database
        self.cache = cache or ResultCacheService(database)

    async def list_events(self) -> List[EventSummary]:
        """Public events with their stages and groups"""
        events = await self.db.get_public_events()
        return [
            EventSummary(
                id=event.id,
                name=event.name,
                stages=[
                    {
                        'id': stage.id,
                        'name': stage.name,
                        'groups': [{'id': group.id, 'name': group.name} for group in stage.groups]
                    }
                    for stage in event.stages
                ]
            )
            for event in events
        ]

    async def get_group_results(self, group_key) -> GroupResults:
        """Results of a group or combined lobby, computed on the first request"""
        return await self.cache.get_group_results(group_key)

    async def get_missing_groups(self) -> List[str]:
        return await self.cache.get_missing_groups()

    async def get_group_roster(self, group_key) -> List[TeamSlot]:
        """
        Merged roster of a group or combined lobby, ordered by slot.

        Raises:
            ValueError: If the key is malformed
        """
        member_ids = parse_group_key(group_key)
        schedules = await self.db.get_schedules_by_group(member_ids)
        group = merge_schedule_groups(schedules).get(make_group_key(member_ids))
        return list(group.teams) if group else []

    async def get_schedule_results(self, schedule_ids: Sequence[int]) -> MatchResult:
        """
        Results for a selection of schedules.

        One schedule yields its single-match ranking; several yield the
        cumulative ranking over their uploaded matches in match-number order.
        """
        schedule_ids = list(schedule_ids)
        if not schedule_ids:
            return MatchResult.missing("No schedules selected")

        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Schedule)
                    .where(Schedule.id.in_(schedule_ids))
                    .order_by(Schedule.match_no, Schedule.id)
                )
                schedules = list(result.scalars().all())
                if len(schedules) != len(set(schedule_ids)):
                    return MatchResult.error("Schedule data doesn't exist")

                match_ids = [s.match_id for s in schedules if s.match_id is not None]
                if not match_ids:
                    return MatchResult.missing("Matches data doesn't exist")

                if len(schedule_ids) == 1:
                    return await MatchRankingCalculator(session).calculate_match_results(match_ids[0])
                return await CumulativeRankingCalculator(session).calculate_cumulative_results(match_ids)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load schedules {schedule_ids}: {e}", exc_info=True)
            return MatchResult.error("Error fetching schedule data")

    async def warm_cache(self) -> Dict[str, ResultStatus]:
        """
        Compute every public group concurrently.

        A failing group is logged and recorded as missing; the rest still
        populate the cache.

        Returns:
            Group key -> status of its computation
        """
        schedules = await self.db.get_public_schedules()
        groups = list(merge_schedule_groups(schedules).values())

        outcomes = await asyncio.gather(
            *(self.cache.resolve_group(group) for group in groups),
            return_exceptions=True
        )

        statuses: Dict[str, ResultStatus] = {}
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Failed to compute results for group {group.id}: {outcome}")
                await self.cache.mark_missing(group.id)
                statuses[group.id] = ResultStatus.ERROR
            else:
                if not outcome.ok:
                    logger.warning(f"Group {group.id} has no results: {outcome.message}")
                statuses[group.id] = outcome.status

        logger.info(
            f"Warmed result cache: {sum(1 for s in statuses.values() if s == ResultStatus.SUCCESS)}"
            f"/{len(statuses)} groups computed"
        )
        return statuses

    async def invalidate(self, group_ids: Sequence[int]) -> List[str]:
        """Ingest hook: forget results of every key containing the groups"""
        return await self.cache.invalidate(group_ids)
