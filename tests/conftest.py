"""
Shared fixtures: a file-backed SQLite database per test and a small seeded
tournament (one event, two groups of two teams, three schedules).
"""

import os
from types import SimpleNamespace

import pytest

# Console logging only while testing
os.environ.setdefault("LOG_TO_FILE", "false")

from scoreboard.constants import TelemetryConstants
from scoreboard.database.database import Database


def player_record(uid, team_id, rank, kills=0, damage=0.0, survival=0.0, name=None, **extra):
    """One TotalPlayerList entry with every required counter present."""
    record = {wire_name: 0 for wire_name in TelemetryConstants.PLAYER_COUNTERS}
    record.update({
        'uId': uid,
        'playerName': name or f"player{uid}",
        'teamId': team_id,
        'rank': rank,
        'killNum': kills,
        'damage': damage,
        'survivalTime': survival,
    })
    record.update(extra)
    return record


def snapshot_payload(game_id, players, teams=None):
    """A full export wrapping the player records, team summaries derived when omitted."""
    if teams is None:
        summaries = {}
        for record in players:
            team = summaries.setdefault(record['teamId'], {
                'teamId': record['teamId'],
                'teamName': f"team{record['teamId']}",
                'killNum': 0,
                'liveMemberNum': 0,
            })
            team['killNum'] += record['killNum']
        teams = list(summaries.values())
    return {
        'allinfo': {
            'GameID': game_id,
            'GameStartTime': '1700000000',
            'FightingStartTime': '1700000060',
            'FinishedStartTime': '1700001800',
            'CurrentTime': '1700001900',
            'TotalPlayerList': players,
            'TeamInfoList': teams,
        }
    }


def first_match_payload(game_id='G-1001'):
    """Alpha wins with 8 kills, Bravo second with 5."""
    return snapshot_payload(game_id, [
        player_record('1001', 1, rank=1, kills=5, damage=500.0, survival=1500.0),
        player_record('1002', 1, rank=1, kills=3, damage=300.0, survival=1500.0),
        player_record('2001', 2, rank=2, kills=5, damage=400.0, survival=1200.0),
        player_record('2002', 2, rank=3, kills=0, damage=100.0, survival=900.0),
    ])


def second_match_payload(game_id='G-1002'):
    """Bravo wins with 2 kills, Alpha second with 1."""
    return snapshot_payload(game_id, [
        player_record('1001', 1, rank=2, kills=1, damage=150.0, survival=1300.0),
        player_record('1002', 1, rank=2, kills=0, damage=50.0, survival=1100.0),
        player_record('2001', 2, rank=1, kills=2, damage=250.0, survival=1600.0),
        player_record('2002', 2, rank=1, kills=0, damage=80.0, survival=1600.0),
    ])


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'scoreboard.db'}"


@pytest.fixture
def make_db(db_url):
    """Return a coroutine function creating an initialized Database."""
    async def _make():
        db = Database(db_url)
        await db.initialize()
        return db
    return _make


@pytest.fixture
def seed_tournament():
    """Return a coroutine function seeding the standard tournament into a Database."""
    async def _seed(db):
        point_system = await db.create_point_system("Standard", {1: 10, 2: 6, 3: 5})
        event = await db.create_event("Spring Cup", point_system.id)
        stage = await db.create_stage(event.id, "Qualifiers")
        group_a = await db.create_group(stage.id, "Group A")
        group_b = await db.create_group(stage.id, "Group B")

        alpha = await db.create_team(group_a.id, "Alpha", 1, [
            {'name': 'alpha_one', 'uid': '1001'},
            {'name': 'alpha_two', 'uid': '1002'},
        ])
        bravo = await db.create_team(group_a.id, "Bravo", 2, [
            {'name': 'bravo_one', 'uid': '2001'},
            {'name': 'bravo_two', 'uid': '2002'},
        ])
        charlie = await db.create_team(group_b.id, "Charlie", 1, [
            {'name': 'charlie_one', 'uid': '3001'},
            {'name': 'charlie_two', 'uid': '3002'},
        ])
        delta = await db.create_team(group_b.id, "Delta", 2, [
            {'name': 'delta_one', 'uid': '4001'},
            {'name': 'delta_two', 'uid': '4002'},
        ])

        first = await db.create_schedule([group_a.id], 1, "Erangel")
        second = await db.create_schedule([group_a.id], 2, "Miramar")
        combined = await db.create_schedule([group_b.id, group_a.id], 3, "Sanhok")

        return SimpleNamespace(
            point_system=point_system,
            event=event,
            stage=stage,
            group_a=group_a,
            group_b=group_b,
            alpha=alpha,
            bravo=bravo,
            charlie=charlie,
            delta=delta,
            first=first,
            second=second,
            combined=combined,
        )
    return _seed
