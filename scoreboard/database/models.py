from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float, JSON,
    ForeignKey, Table, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from typing import Dict

Base = declarative_base()

# ============================================================================
# Point systems
# ============================================================================

class PointSystem(Base):
    __tablename__ = 'point_systems'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    entries = relationship(
        "PointSystemEntry",
        back_populates="point_system",
        cascade="all, delete-orphan",
        order_by="PointSystemEntry.rank"
    )

    def as_table(self) -> Dict[int, int]:
        """Return the {rank: points} table"""
        return {entry.rank: entry.point for entry in self.entries}

    def __repr__(self):
        return f"<PointSystem(name='{self.name}', entries={len(self.entries)})>"

class PointSystemEntry(Base):
    __tablename__ = 'point_system_entries'

    id = Column(Integer, primary_key=True)
    point_system_id = Column(Integer, ForeignKey('point_systems.id'), nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    point = Column(Integer, nullable=False, default=0)

    point_system = relationship("PointSystem", back_populates="entries")

    __table_args__ = (UniqueConstraint('point_system_id', 'rank', name='uq_point_system_rank'),)

    def __repr__(self):
        return f"<PointSystemEntry(rank={self.rank}, point={self.point})>"

# ============================================================================
# Roster: events, stages, groups, teams, players
# ============================================================================

class Event(Base):
    __tablename__ = 'events'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False, unique=True)
    is_public = Column(Boolean, default=False)
    point_system_id = Column(Integer, ForeignKey('point_systems.id'), nullable=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    point_system = relationship("PointSystem")
    stages = relationship("Stage", back_populates="event", order_by="Stage.id")

    def __repr__(self):
        return f"<Event(name='{self.name}', public={self.is_public})>"

class Stage(Base):
    __tablename__ = 'stages'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    event_id = Column(Integer, ForeignKey('events.id'), nullable=False, index=True)

    event = relationship("Event", back_populates="stages")
    groups = relationship("Group", back_populates="stage", order_by="Group.id")

    __table_args__ = (UniqueConstraint('event_id', 'name'),)

    def __repr__(self):
        return f"<Stage(name='{self.name}', event_id={self.event_id})>"

schedule_groups = Table(
    'schedule_groups',
    Base.metadata,
    Column('schedule_id', Integer, ForeignKey('schedules.id'), primary_key=True),
    Column('group_id', Integer, ForeignKey('groups.id'), primary_key=True),
)

class Group(Base):
    """A lobby/bracket cell: teams ordered by slot, schedules by match number."""
    __tablename__ = 'groups'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    event_id = Column(Integer, ForeignKey('events.id'), nullable=False)
    stage_id = Column(Integer, ForeignKey('stages.id'), nullable=False, index=True)

    # Relationships
    event = relationship("Event")
    stage = relationship("Stage", back_populates="groups")
    teams = relationship("Team", back_populates="group", order_by="Team.slot")
    schedules = relationship(
        "Schedule",
        secondary=schedule_groups,
        back_populates="groups",
        order_by="Schedule.match_no"
    )

    __table_args__ = (UniqueConstraint('stage_id', 'name'),)

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}')>"

class Team(Base):
    __tablename__ = 'teams'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    slot = Column(Integer, nullable=False)
    group_id = Column(Integer, ForeignKey('groups.id'), nullable=False, index=True)
    email = Column(String(200))

    # Only field that may change after roster import
    dq = Column(Boolean, default=False, nullable=False)

    # Relationships
    group = relationship("Group", back_populates="teams")
    players = relationship("Player", back_populates="team", order_by="Player.id")

    __table_args__ = (UniqueConstraint('group_id', 'name', name='uq_team_name_per_group'),)

    def __repr__(self):
        return f"<Team(slot={self.slot}, name='{self.name}', dq={self.dq})>"

class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    uid = Column(String(64), nullable=False, index=True)  # External telemetry uid
    email = Column(String(200), nullable=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=False, index=True)

    team = relationship("Team", back_populates="players")

    def __repr__(self):
        return f"<Player(uid='{self.uid}', name='{self.name}')>"

# ============================================================================
# Schedules and matches
# ============================================================================

class Schedule(Base):
    __tablename__ = 'schedules'

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey('events.id'), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey('stages.id'), nullable=False)
    match_no = Column(Integer, nullable=False)
    map_name = Column(String(20), nullable=False)
    start_time = Column(String(20))
    date = Column(String(20))

    # Set once telemetry for this slot is uploaded
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=True, unique=True)

    # Relationships
    event = relationship("Event")
    stage = relationship("Stage")
    match = relationship("Match", back_populates="schedule")
    groups = relationship(
        "Group",
        secondary=schedule_groups,
        back_populates="schedules",
        order_by="Group.id"
    )

    @property
    def is_multi_group(self) -> bool:
        return len(self.groups) > 1

    def __repr__(self):
        return f"<Schedule(match_no={self.match_no}, map='{self.map_name}', match_id={self.match_id})>"

class Match(Base):
    """
    One uploaded telemetry snapshot.

    Stores the raw feed next to the derived stat rows and the point system
    captured from the event at upload time.
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)
    game_id = Column(String(64), nullable=False, unique=True, index=True)

    # Global timing as reported by the feed
    game_start_time = Column(String(32))
    fighting_start_time = Column(String(32))
    finished_start_time = Column(String(32))
    current_game_time = Column(String(32))

    # Raw telemetry
    team_info = Column(JSON)
    player_info = Column(JSON)

    point_system_id = Column(Integer, ForeignKey('point_systems.id'), nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    point_system = relationship("PointSystem")
    schedule = relationship("Schedule", back_populates="match", uselist=False)
    player_stats = relationship("PlayerStat", back_populates="match", cascade="all, delete-orphan")
    team_stats = relationship("TeamStat", back_populates="match", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Match(id={self.id}, game_id='{self.game_id}')>"

# ============================================================================
# Derived per-match statistics
# ============================================================================

class StatCountersMixin:
    """Telemetry counters shared by player and team stat rows."""
    kill_num = Column(Integer, default=0)
    kill_num_before_die = Column(Integer, default=0)
    got_air_drop_num = Column(Integer, default=0)
    max_kill_distance = Column(Float, default=0)
    damage = Column(Float, default=0)
    kill_num_in_vehicle = Column(Integer, default=0)
    kill_num_by_grenade = Column(Integer, default=0)
    ai_kill_num = Column(Integer, default=0)
    boss_kill_num = Column(Integer, default=0)
    rank = Column(Integer, nullable=False)
    in_damage = Column(Float, default=0)
    heal = Column(Float, default=0)
    head_shot_num = Column(Integer, default=0)
    survival_time = Column(Float, default=0)
    drive_distance = Column(Float, default=0)
    march_distance = Column(Float, default=0)
    assists = Column(Integer, default=0)
    knockouts = Column(Integer, default=0)
    rescue_times = Column(Integer, default=0)
    use_smoke_grenade_num = Column(Integer, default=0)
    use_frag_grenade_num = Column(Integer, default=0)
    use_burn_grenade_num = Column(Integer, default=0)
    use_flash_grenade_num = Column(Integer, default=0)
    poison_total_damage = Column(Float, default=0)
    use_self_rescue_time = Column(Integer, default=0)
    use_emergency_call_time = Column(Integer, default=0)

class PlayerStat(StatCountersMixin, Base):
    __tablename__ = 'player_stats'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)

    player = relationship("Player")
    match = relationship("Match", back_populates="player_stats")

    __table_args__ = (UniqueConstraint('player_id', 'match_id', name='uq_player_stat_per_match'),)

    def __repr__(self):
        return f"<PlayerStat(player_id={self.player_id}, match_id={self.match_id}, kills={self.kill_num})>"

class TeamStat(StatCountersMixin, Base):
    __tablename__ = 'team_stats'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=False, index=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)

    team = relationship("Team")
    match = relationship("Match", back_populates="team_stats")

    __table_args__ = (UniqueConstraint('team_id', 'match_id', name='uq_team_stat_per_match'),)

    def __repr__(self):
        return f"<TeamStat(team_id={self.team_id}, match_id={self.match_id}, rank={self.rank})>"
