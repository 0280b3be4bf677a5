from typing import Optional, List, Dict, Iterable
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, func
from contextlib import asynccontextmanager

from scoreboard.config import Config
from scoreboard.constants import ScheduleConstants
from scoreboard.database.models import (
    Base, PointSystem, PointSystemEntry, Event, Stage, Group, Team, Player,
    Schedule, Match, PlayerStat, TeamStat
)
from scoreboard.data_models.telemetry import TelemetrySnapshot
from scoreboard.utils.exceptions import ConflictError, ValidationError
from scoreboard.utils.logger import setup_logger

class Database:
    """
    Roster/schedule store.

    Owns the async engine and exposes the narrow query interface the engine
    consumes: teams by group, uid-indexed players by team, schedules by group,
    point systems, and the match/stat write path used during ingestion.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = Config.get_async_database_url(self.database_url)

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @property
    def session_factory(self):
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Ingestion relies on this so that a
        rejected snapshot leaves no partial rows behind.

        Usage:
            async with db.transaction() as session:
                match = await db.create_match(session, snapshot, point_system_id)
                await db.upsert_player_stat(session, player_id, match.id, counters)
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new session.
        """
        if session:
            yield session
        else:
            async with self.get_session() as new_session:
                yield new_session

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Point system operations
    async def create_point_system(self, name: str, table: Dict[int, int]) -> PointSystem:
        """Create a named {rank: points} table"""
        async with self.transaction() as session:
            point_system = PointSystem(
                name=name,
                entries=[PointSystemEntry(rank=rank, point=point) for rank, point in sorted(table.items())]
            )
            session.add(point_system)
            await session.flush()
            await session.refresh(point_system, ['entries'])
            return point_system

    async def get_point_system(self, point_system_id: int, session: Optional[AsyncSession] = None) -> Optional[PointSystem]:
        """Get a point system with its entries loaded"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(PointSystem)
                .options(selectinload(PointSystem.entries))
                .where(PointSystem.id == point_system_id)
            )
            return result.scalar_one_or_none()

    # Roster operations
    async def create_event(self, name: str, point_system_id: Optional[int] = None, is_public: bool = True) -> Event:
        """Create an event referencing its point system"""
        async with self.transaction() as session:
            event = Event(name=name, point_system_id=point_system_id, is_public=is_public)
            session.add(event)
            await session.flush()
            return event

    async def create_stage(self, event_id: int, name: str) -> Stage:
        async with self.transaction() as session:
            stage = Stage(event_id=event_id, name=name)
            session.add(stage)
            await session.flush()
            return stage

    async def create_group(self, stage_id: int, name: str) -> Group:
        async with self.transaction() as session:
            stage = await session.get(Stage, stage_id)
            if not stage:
                raise ValidationError(f"Stage {stage_id} not found")
            group = Group(stage_id=stage_id, event_id=stage.event_id, name=name)
            session.add(group)
            await session.flush()
            return group

    async def create_team(
        self,
        group_id: int,
        name: str,
        slot: int,
        players: Iterable[Dict[str, str]],
        email: Optional[str] = None
    ) -> Team:
        """
        Create a team with its ordered players.

        Args:
            group_id: Group the team is registered in
            name: Team name, unique within the group
            slot: Lobby slot number
            players: Dicts with 'name', 'uid' and optional 'email'
            email: Team contact email

        Raises:
            ValidationError: If the group is unknown or the name is taken
        """
        async with self.transaction() as session:
            if not await session.get(Group, group_id):
                raise ValidationError(f"Group {group_id} not found")

            existing = await session.execute(
                select(Team.id).where(Team.group_id == group_id, Team.name == name)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValidationError(f"Team '{name}' already exists in group {group_id}")

            team = Team(
                group_id=group_id,
                name=name,
                slot=slot,
                email=email,
                players=[
                    Player(name=player['name'], uid=str(player['uid']), email=player.get('email'))
                    for player in players
                ]
            )
            session.add(team)
            await session.flush()
            await session.refresh(team, ['players'])
            return team

    async def set_team_disqualified(self, team_id: int, dq: bool = True):
        """Flip a team's disqualified flag"""
        async with self.transaction() as session:
            result = await session.execute(
                update(Team).where(Team.id == team_id).values(dq=dq)
            )
            if result.rowcount == 0:
                raise ValidationError(f"Team {team_id} not found")
        self.logger.info(f"Team {team_id} disqualified={dq}")

    async def get_teams_by_group(self, group_ids: List[int], session: Optional[AsyncSession] = None) -> List[Team]:
        """Get teams of the given groups ordered by slot"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Team)
                .where(Team.group_id.in_(group_ids))
                .order_by(Team.slot, Team.id)
            )
            return list(result.scalars().all())

    async def get_players_by_team(self, team_ids: List[int], session: Optional[AsyncSession] = None) -> Dict[str, Player]:
        """Get the players of the given teams indexed by external uid"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Player)
                .where(Player.team_id.in_(team_ids))
                .order_by(Player.id)
            )
            players = {}
            for player in result.scalars().all():
                # First registration wins when a uid is listed twice
                players.setdefault(player.uid, player)
            return players

    # Schedule operations
    async def create_schedule(
        self,
        group_ids: List[int],
        match_no: int,
        map_name: str,
        start_time: Optional[str] = None,
        date: Optional[str] = None
    ) -> Schedule:
        """
        Create a schedule slot for one group or a combined multi-group lobby.

        Raises:
            ValidationError: If a group is unknown, the groups span stages,
                the map is unknown, or the match number is taken in a group
        """
        if not group_ids:
            raise ValidationError("A schedule needs at least one group")
        if map_name not in ScheduleConstants.MAPS:
            raise ValidationError(f"Unknown map '{map_name}'")

        async with self.transaction() as session:
            result = await session.execute(select(Group).where(Group.id.in_(group_ids)))
            groups = list(result.scalars().all())
            if len(groups) != len(set(group_ids)):
                raise ValidationError(f"Unknown group in {group_ids}")
            if len({group.stage_id for group in groups}) > 1:
                raise ValidationError("Schedule groups must belong to the same stage")

            taken = await session.execute(
                select(func.count(Schedule.id))
                .where(Schedule.match_no == match_no)
                .where(Schedule.groups.any(Group.id.in_(group_ids)))
            )
            if taken.scalar():
                raise ValidationError(f"Match number {match_no} already scheduled for groups {group_ids}")

            schedule = Schedule(
                event_id=groups[0].event_id,
                stage_id=groups[0].stage_id,
                match_no=match_no,
                map_name=map_name,
                start_time=start_time,
                date=date,
                groups=sorted(groups, key=lambda g: g.id)
            )
            session.add(schedule)
            await session.flush()
            return schedule

    async def get_schedule(self, schedule_id: int, session: Optional[AsyncSession] = None) -> Optional[Schedule]:
        """Get a schedule with groups, event and the event's point system loaded"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Schedule)
                .options(
                    selectinload(Schedule.groups),
                    selectinload(Schedule.event)
                    .selectinload(Event.point_system)
                    .selectinload(PointSystem.entries)
                )
                .where(Schedule.id == schedule_id)
            )
            return result.scalar_one_or_none()

    async def get_schedules_by_group(
        self,
        group_ids: List[int],
        session: Optional[AsyncSession] = None
    ) -> List[Schedule]:
        """Get every schedule touching any of the groups, in match-number order"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Schedule)
                .options(selectinload(Schedule.groups).selectinload(Group.teams))
                .where(Schedule.groups.any(Group.id.in_(group_ids)))
                .order_by(Schedule.match_no, Schedule.id)
            )
            return list(result.scalars().all())

    async def get_public_schedules(self, session: Optional[AsyncSession] = None) -> List[Schedule]:
        """Get every schedule of a public event, in match-number order"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Schedule)
                .join(Event, Schedule.event_id == Event.id)
                .options(selectinload(Schedule.groups).selectinload(Group.teams))
                .where(Event.is_public == True)
                .order_by(Schedule.match_no, Schedule.id)
            )
            return list(result.scalars().all())

    async def get_public_events(self) -> List[Event]:
        """Get public events with stages and groups loaded"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Event)
                .options(selectinload(Event.stages).selectinload(Stage.groups))
                .where(Event.is_public == True)
                .order_by(Event.id)
            )
            return list(result.scalars().all())

    # Match operations
    async def get_match_by_game_id(self, game_id: str, session: Optional[AsyncSession] = None) -> Optional[Match]:
        async with self._get_session_context(session) as s:
            result = await s.execute(select(Match).where(Match.game_id == game_id))
            return result.scalar_one_or_none()

    async def create_match(self, session: AsyncSession, snapshot: TelemetrySnapshot, point_system_id: int) -> Match:
        """
        Create the Match row for a snapshot, rejecting a known game id.

        Raises:
            ConflictError: If a match with the snapshot's game id exists
        """
        if await self.get_match_by_game_id(snapshot.game_id, session=session):
            raise ConflictError(snapshot.game_id)

        match = Match(
            game_id=snapshot.game_id,
            game_start_time=snapshot.timing.get('GameStartTime'),
            fighting_start_time=snapshot.timing.get('FightingStartTime'),
            finished_start_time=snapshot.timing.get('FinishedStartTime'),
            current_game_time=snapshot.timing.get('CurrentTime'),
            team_info=snapshot.team_info,
            player_info=snapshot.player_info,
            point_system_id=point_system_id
        )
        session.add(match)
        try:
            await session.flush()
        except IntegrityError:
            # Lost a race against another process inserting the same game id
            raise ConflictError(snapshot.game_id)
        return match

    async def link_schedule_to_match(self, session: AsyncSession, schedule: Schedule, match: Match):
        schedule.match_id = match.id
        session.add(schedule)
        await session.flush()

    async def upsert_player_stat(self, session: AsyncSession, player_id: int, match_id: int, counters: Dict) -> PlayerStat:
        """Insert or overwrite the (player, match) stat row"""
        result = await session.execute(
            select(PlayerStat).where(PlayerStat.player_id == player_id, PlayerStat.match_id == match_id)
        )
        stat = result.scalar_one_or_none()
        if stat is None:
            stat = PlayerStat(player_id=player_id, match_id=match_id)
            session.add(stat)
        for column, value in counters.items():
            setattr(stat, column, value)
        return stat

    async def upsert_team_stat(self, session: AsyncSession, team_id: int, match_id: int, counters: Dict) -> TeamStat:
        """Insert or overwrite the (team, match) stat row"""
        result = await session.execute(
            select(TeamStat).where(TeamStat.team_id == team_id, TeamStat.match_id == match_id)
        )
        stat = result.scalar_one_or_none()
        if stat is None:
            stat = TeamStat(team_id=team_id, match_id=match_id)
            session.add(stat)
        for column, value in counters.items():
            setattr(stat, column, value)
        return stat
