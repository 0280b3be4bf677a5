"""
Stat ingestion service.

Consumes one post-match telemetry snapshot for a schedule slot, reconciles
telemetry uids against the roster of the schedule's groups, and persists
per-player and per-team stat rows in a single transaction. Unregistered uids
are reported, never fabricated into players.

Writes are serialised per game id with an in-process lock; the unique game id
constraint is the guard across processes.
"""

import asyncio
import weakref
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from sqlalchemy.exc import SQLAlchemyError

from scoreboard.config import Config
from scoreboard.constants import TelemetryConstants
from scoreboard.database.database import Database
from scoreboard.database.models import Player
from scoreboard.data_models.results import IngestReport, UploadOutcome
from scoreboard.data_models.telemetry import PlayerTelemetry, TelemetrySnapshot
from scoreboard.services.base import BaseService
from scoreboard.utils.exceptions import (
    ConflictError, DatabaseError, DiagnosticWarning, ScoreboardException, ValidationError
)
from scoreboard.utils.logger import setup_logger

logger = setup_logger(__name__)

InvalidationHook = Callable[[List[int]], Awaitable[Any]]


def fold_team_counters(player_counters: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Fold the counters of one team's players into the team's totals.

    Most counters are summed. The longest kill distance is the maximum, and
    the team's placement is the best (lowest) rank any of its players carries,
    since the feed spreads the shared team finish across player records.
    """
    totals: Dict[str, Any] = {}
    for counters in player_counters:
        for column, value in counters.items():
            if column not in totals:
                totals[column] = value
            elif column in TelemetryConstants.MAX_COUNTERS:
                totals[column] = max(totals[column], value)
            elif column in TelemetryConstants.MIN_COUNTERS:
                totals[column] = min(totals[column], value)
            else:
                totals[column] += value
    return totals


class StatIngestService(BaseService):
    """Service for recording uploaded match telemetry."""

    def __init__(self, database: Database, max_retries: int = None):
        super().__init__(database.session_factory)
        self.db = database
        self.max_retries = max_retries or Config.INGEST_MAX_RETRIES
        # Lock per game id, dropped once no upload of that game holds it
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = asyncio.Lock()
        self._invalidation_hooks: List[InvalidationHook] = []

    def register_invalidation_hook(self, hook: InvalidationHook):
        """Register a coroutine called with the schedule's group ids after each successful ingest."""
        self._invalidation_hooks.append(hook)

    async def _lock_for(self, game_id: str) -> asyncio.Lock:
        async with self._locks_guard:
            lock = self._locks.get(game_id)
            if lock is None:
                lock = self._locks[game_id] = asyncio.Lock()
            return lock

    @staticmethod
    def _group_by_team(
        records: Tuple[PlayerTelemetry, ...],
        roster: Dict[str, Player]
    ) -> Tuple[Dict[int, List[Tuple[Player, PlayerTelemetry]]], List[str], List[DiagnosticWarning]]:
        """
        First pass: resolve each telemetry record to a rostered player and
        bucket it under the player's team.
        """
        by_team: Dict[int, List[Tuple[Player, PlayerTelemetry]]] = {}
        unregistered: List[str] = []
        warnings: List[DiagnosticWarning] = []
        seen = set()

        for record in records:
            player = roster.get(record.uid)
            if player is None:
                unregistered.append(record.uid)
                warnings.append(DiagnosticWarning(record.uid, "uid is not registered in the schedule's groups"))
                logger.warning(f"Player with uid {record.uid} not found in roster, skipping")
                continue
            if record.uid in seen:
                warnings.append(DiagnosticWarning(record.uid, "duplicate telemetry record ignored"))
                logger.warning(f"Duplicate telemetry record for uid {record.uid}, skipping")
                continue
            seen.add(record.uid)
            by_team.setdefault(player.team_id, []).append((player, record))

        return by_team, unregistered, warnings

    async def _ingest_once(self, snapshot: TelemetrySnapshot, schedule_id: int) -> Tuple[IngestReport, List[int]]:
        async with self.db.transaction() as session:
            schedule = await self.db.get_schedule(schedule_id, session=session)
            if schedule is None:
                raise ValidationError(f"Schedule {schedule_id} not found")
            event = schedule.event
            if event is None:
                raise ValidationError(f"Schedule {schedule_id} has no event")
            if event.point_system is None:
                raise ValidationError(f"Event '{event.name}' has no point system")
            if not schedule.groups:
                raise ValidationError(f"Schedule {schedule_id} has no groups")

            if await self.db.get_match_by_game_id(snapshot.game_id, session=session):
                raise ConflictError(snapshot.game_id)
            if schedule.match_id is not None:
                raise ConflictError(
                    snapshot.game_id,
                    f"Schedule {schedule_id} is already linked to match {schedule.match_id}"
                )

            group_ids = [group.id for group in schedule.groups]
            teams = await self.db.get_teams_by_group(group_ids, session=session)
            roster = await self.db.get_players_by_team([team.id for team in teams], session=session)

            match = await self.db.create_match(session, snapshot, event.point_system_id)

            by_team, unregistered, warnings = self._group_by_team(snapshot.players, roster)

            # Second pass: persist player rows, then fold each team's counters
            players_recorded = 0
            for team_id, entries in by_team.items():
                for player, record in entries:
                    await self.db.upsert_player_stat(session, player.id, match.id, record.counters)
                    players_recorded += 1
                team_counters = fold_team_counters([record.counters for _, record in entries])
                await self.db.upsert_team_stat(session, team_id, match.id, team_counters)

            await self.db.link_schedule_to_match(session, schedule, match)

            report = IngestReport(
                match_id=match.id,
                game_id=snapshot.game_id,
                schedule_id=schedule_id,
                players_recorded=players_recorded,
                teams_recorded=len(by_team),
                unregistered_uids=tuple(unregistered),
                warnings=tuple(warnings)
            )
        return report, group_ids

    async def ingest(self, payload: Any, schedule_id: int) -> IngestReport:
        """
        Record one telemetry snapshot against a schedule slot.

        Args:
            payload: Raw telemetry export or an already decoded TelemetrySnapshot
            schedule_id: Schedule the match was played for

        Returns:
            IngestReport including unregistered uids

        Raises:
            ValidationError: Malformed snapshot, or missing schedule/event/group/point system
            ConflictError: The game id was already uploaded, or the schedule already has a match
            DatabaseError: The store failed after retries
        """
        snapshot = payload if isinstance(payload, TelemetrySnapshot) else TelemetrySnapshot.from_payload(payload)

        lock = await self._lock_for(snapshot.game_id)
        async with lock:
            async def attempt():
                return await self._ingest_once(snapshot, schedule_id)

            try:
                report, group_ids = await self.execute_with_retry(attempt, max_retries=self.max_retries)
            except SQLAlchemyError as e:
                logger.error(f"Database error during ingest of {snapshot.game_id}: {e}")
                raise DatabaseError("match ingest", str(e))

        logger.info(
            f"Recorded match {report.game_id} (id={report.match_id}) for schedule {schedule_id}: "
            f"{report.players_recorded} players, {report.teams_recorded} teams, "
            f"{len(report.unregistered_uids)} unregistered"
        )

        for hook in self._invalidation_hooks:
            await hook(group_ids)

        return report

    async def upload(self, payload: Any, schedule_id: int) -> UploadOutcome:
        """Ingest and report the outcome as a tagged result instead of raising."""
        try:
            report = await self.ingest(payload, schedule_id)
        except ScoreboardException as e:
            logger.warning(f"Upload for schedule {schedule_id} rejected: {e}")
            return UploadOutcome(status="error", message=e.user_message)
        return UploadOutcome(status="success", message=f"Match {report.game_id} recorded", report=report)
