"""
Result cache service.

Memoizes per-group results (every uploaded schedule's single-match result and
the standings after it) and tracks group keys known to have no uploaded match
yet. Entries are dropped through `invalidate`, which the ingest service calls
after each successful upload.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.config import Config
from scoreboard.database.database import Database
from scoreboard.data_models.results import GroupResults, MatchResult, ResultStatus, ScheduleResult
from scoreboard.operations.cumulative_ranking import CumulativeRankingCalculator
from scoreboard.operations.group_merge import MergedGroup, make_group_key, merge_schedule_groups, parse_group_key
from scoreboard.operations.match_ranking import MatchRankingCalculator
from scoreboard.services.base import BaseService
from scoreboard.utils.logger import setup_logger

logger = setup_logger(__name__)


class ResultCacheService(BaseService):
    """Per-group result cache with a missing-group set."""

    def __init__(self, database: Database, max_size: int = None):
        super().__init__(database.session_factory)
        self.db = database
        self._cache: Dict[str, GroupResults] = {}
        self._missing: Set[str] = set()
        self._cache_max_size = max_size or Config.RESULT_CACHE_MAX_SIZE
        self._cache_lock = asyncio.Lock()
        # Bumped on every invalidation; results computed under an older
        # generation are returned but not stored
        self._generation = 0

    async def _match_results(self, match_id: int) -> MatchResult:
        async with self.session_factory() as session:
            return await MatchRankingCalculator(session).calculate_match_results(match_id)

    async def _cumulative_results(self, match_ids: Sequence[int]) -> MatchResult:
        async with self.session_factory() as session:
            return await CumulativeRankingCalculator(session).calculate_cumulative_results(match_ids)

    async def compute_group(self, group: MergedGroup) -> GroupResults:
        """
        Compute results for every uploaded schedule of a group, in match order.

        Single-match results and the "after match k" prefixes are independent
        and computed concurrently, each on its own session.
        """
        uploaded = group.uploaded_schedules
        if not uploaded:
            return GroupResults.missing(group.id, "Matches data doesn't exist")

        match_ids = [schedule.match_id for schedule in uploaded]
        match_results, after_results = await asyncio.gather(
            asyncio.gather(*(self._match_results(match_id) for match_id in match_ids)),
            asyncio.gather(*(self._cumulative_results(match_ids[:k + 1]) for k in range(len(match_ids))))
        )

        for result in list(match_results) + list(after_results):
            if not result.ok:
                return GroupResults.error(group.id, result.message)

        schedules = tuple(
            ScheduleResult(
                schedule_id=schedule.id,
                match_no=schedule.match_no,
                map_name=schedule.map_name,
                match_data=match_result,
                after_match_data=after_result
            )
            for schedule, match_result, after_result in zip(uploaded, match_results, after_results)
        )
        return GroupResults(
            status=ResultStatus.SUCCESS,
            group_id=group.id,
            name=group.name,
            is_multi_group=group.is_multi_group,
            schedules=schedules,
            message="Successful"
        )

    async def get_cached(self, group_key: str) -> Optional[GroupResults]:
        async with self._cache_lock:
            return self._cache.get(group_key)

    async def _store(self, group_key: str, results: GroupResults, generation: int):
        async with self._cache_lock:
            if generation != self._generation:
                logger.debug(f"Discarding stale results for group {group_key}")
                return
            if results.ok:
                self._cache[group_key] = results
                self._missing.discard(group_key)
                self._cleanup_cache()
            else:
                self._missing.add(group_key)

    def _cleanup_cache(self):
        """Remove oldest entries to stay within size limit (caller holds the lock)."""
        while len(self._cache) > self._cache_max_size:
            oldest = next(iter(self._cache))
            self._cache.pop(oldest)
            logger.debug(f"Evicted group {oldest} from result cache")

    async def resolve_group(self, group: MergedGroup) -> GroupResults:
        """Serve a merged group from cache, computing and storing it on a miss."""
        cached = await self.get_cached(group.id)
        if cached is not None:
            logger.debug(f"Cache hit for group {group.id}")
            return cached

        logger.debug(f"Cache miss for group {group.id}, calculating fresh")
        generation = self._generation
        results = await self.compute_group(group)
        await self._store(group.id, results, generation)
        return results

    async def get_group_results(self, group_key) -> GroupResults:
        """
        Results for a group id or combined-lobby key.

        Never raises: unknown keys, missing data and database failures come
        back as tagged GroupResults.
        """
        try:
            member_ids = parse_group_key(group_key)
        except ValueError as e:
            return GroupResults.error(str(group_key), str(e))
        key = make_group_key(member_ids)

        cached = await self.get_cached(key)
        if cached is not None:
            logger.debug(f"Cache hit for group {key}")
            return cached

        generation = self._generation
        try:
            schedules = await self.db.get_schedules_by_group(member_ids)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load schedules for group {key}: {e}", exc_info=True)
            await self.mark_missing(key)
            return GroupResults.error(key, "Error fetching group data")

        group = merge_schedule_groups(schedules).get(key)
        if group is None:
            return GroupResults.error(key, "Schedule data doesn't exist")

        results = await self.compute_group(group)
        await self._store(key, results, generation)
        return results

    async def mark_missing(self, group_key: str):
        async with self._cache_lock:
            self._missing.add(group_key)

    async def get_missing_groups(self) -> List[str]:
        async with self._cache_lock:
            return sorted(self._missing)

    async def invalidate(self, group_ids: Sequence[int]) -> List[str]:
        """Drop every cached or missing key that contains any of the groups."""
        targets = set(group_ids)
        async with self._cache_lock:
            self._generation += 1
            dropped = [
                key for key in list(self._cache) + list(self._missing)
                if targets.intersection(parse_group_key(key))
            ]
            for key in dropped:
                self._cache.pop(key, None)
                self._missing.discard(key)
        if dropped:
            logger.info(f"Invalidated cached results for groups {sorted(set(dropped))}")
        return sorted(set(dropped))

    async def invalidate_all(self):
        """Clear entire cache."""
        async with self._cache_lock:
            self._generation += 1
            self._cache.clear()
            self._missing.clear()
        logger.info("Clearing entire result cache")

    async def cached_keys(self) -> List[str]:
        async with self._cache_lock:
            return list(self._cache)
