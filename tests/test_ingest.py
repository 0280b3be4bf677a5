"""
Tests for the stat ingestion service: roster reconciliation, team folding,
duplicate rejection and all-or-nothing writes.
"""

import asyncio
import gc

import pytest
from sqlalchemy import func, select

from scoreboard.database.models import Match, PlayerStat, Schedule, TeamStat
from scoreboard.services.stat_ingest import StatIngestService
from scoreboard.utils.exceptions import ConflictError, ValidationError

from conftest import first_match_payload, player_record, second_match_payload, snapshot_payload


async def count_rows(db, model):
    async with db.get_session() as session:
        result = await session.execute(select(func.count(model.id)))
        return result.scalar()


class TestIngest:
    """Tests for StatIngestService.ingest."""

    def test_records_players_and_teams(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            report = await StatIngestService(db).ingest(first_match_payload(), t.first.id)

            assert report.game_id == 'G-1001'
            assert report.schedule_id == t.first.id
            assert report.players_recorded == 4
            assert report.teams_recorded == 2
            assert report.unregistered_uids == ()

            assert await count_rows(db, PlayerStat) == 4
            assert await count_rows(db, TeamStat) == 2

            schedule = await db.get_schedule(t.first.id)
            assert schedule.match_id == report.match_id
            await db.close()

        asyncio.run(scenario())

    def test_team_rank_is_best_player_rank(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            report = await StatIngestService(db).ingest(first_match_payload(), t.first.id)

            async with db.get_session() as session:
                result = await session.execute(
                    select(TeamStat).where(TeamStat.match_id == report.match_id)
                )
                stats = {stat.team_id: stat for stat in result.scalars().all()}

            # Bravo's players carried ranks 2 and 3
            assert stats[t.bravo.id].rank == 2
            assert stats[t.bravo.id].kill_num == 5
            assert stats[t.alpha.id].rank == 1
            assert stats[t.alpha.id].kill_num == 8
            assert stats[t.alpha.id].damage == pytest.approx(800.0)
            await db.close()

        asyncio.run(scenario())

    def test_captures_point_system(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            report = await StatIngestService(db).ingest(first_match_payload(), t.first.id)

            async with db.get_session() as session:
                match = await session.get(Match, report.match_id)
                assert match.point_system_id == t.point_system.id
                assert match.game_start_time == '1700000000'
                assert len(match.player_info) == 4
            await db.close()

        asyncio.run(scenario())

    def test_unregistered_uid_reported_not_recorded(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            payload = snapshot_payload('G-2001', [
                player_record('1001', 1, rank=1, kills=2),
                player_record('9999', 7, rank=5, kills=9, name='walk_on'),
            ])
            report = await StatIngestService(db).ingest(payload, t.first.id)

            assert report.unregistered_uids == ('9999',)
            assert [w.uid for w in report.warnings] == ['9999']
            assert report.players_recorded == 1
            assert await count_rows(db, PlayerStat) == 1
            await db.close()

        asyncio.run(scenario())

    def test_uid_outside_schedule_groups_is_unregistered(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            # Charlie plays in Group B, not in the Group A only schedule
            payload = snapshot_payload('G-2002', [
                player_record('1001', 1, rank=1),
                player_record('3001', 3, rank=2),
            ])
            report = await StatIngestService(db).ingest(payload, t.first.id)
            assert report.unregistered_uids == ('3001',)
            await db.close()

        asyncio.run(scenario())

    def test_combined_schedule_resolves_both_groups(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            payload = snapshot_payload('G-2003', [
                player_record('1001', 1, rank=1),
                player_record('3001', 3, rank=2),
                player_record('4001', 4, rank=3),
            ])
            report = await StatIngestService(db).ingest(payload, t.combined.id)
            assert report.unregistered_uids == ()
            assert report.teams_recorded == 3
            await db.close()

        asyncio.run(scenario())

    def test_duplicate_record_warns(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            payload = snapshot_payload('G-2004', [
                player_record('1001', 1, rank=1, kills=2),
                player_record('1001', 1, rank=1, kills=2),
            ])
            report = await StatIngestService(db).ingest(payload, t.first.id)
            assert report.players_recorded == 1
            assert len(report.warnings) == 1
            await db.close()

        asyncio.run(scenario())


class TestRejection:
    """Rejected uploads leave no rows behind."""

    def test_duplicate_game_id_conflicts(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            service = StatIngestService(db)
            await service.ingest(first_match_payload(), t.first.id)

            with pytest.raises(ConflictError) as excinfo:
                await service.ingest(first_match_payload(), t.second.id)
            assert excinfo.value.game_id == 'G-1001'

            assert await count_rows(db, Match) == 1
            assert await count_rows(db, PlayerStat) == 4
            assert await count_rows(db, TeamStat) == 2
            schedule = await db.get_schedule(t.second.id)
            assert schedule.match_id is None
            await db.close()

        asyncio.run(scenario())

    def test_concurrent_duplicates_produce_one_match(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            service = StatIngestService(db)
            outcomes = await asyncio.gather(*(
                service.upload(first_match_payload(), t.first.id) for _ in range(3)
            ))

            statuses = sorted(outcome.status for outcome in outcomes)
            assert statuses == ['error', 'error', 'success']
            assert await count_rows(db, Match) == 1
            assert await count_rows(db, PlayerStat) == 4
            await db.close()

        asyncio.run(scenario())

    def test_schedule_already_linked(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            service = StatIngestService(db)
            await service.ingest(first_match_payload('G-1'), t.first.id)

            with pytest.raises(ConflictError, match="already linked"):
                await service.ingest(first_match_payload('G-2'), t.first.id)
            assert await count_rows(db, Match) == 1
            await db.close()

        asyncio.run(scenario())

    def test_unknown_schedule(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            await seed_tournament(db)
            with pytest.raises(ValidationError, match="not found"):
                await StatIngestService(db).ingest(first_match_payload(), 999)
            assert await count_rows(db, Match) == 0
            await db.close()

        asyncio.run(scenario())

    def test_event_without_point_system(self, make_db):
        async def scenario():
            db = await make_db()
            event = await db.create_event("Unscored", None)
            stage = await db.create_stage(event.id, "Finals")
            group = await db.create_group(stage.id, "Group A")
            await db.create_team(group.id, "Alpha", 1, [{'name': 'alpha_one', 'uid': '1001'}])
            schedule = await db.create_schedule([group.id], 1, "Livik")

            with pytest.raises(ValidationError, match="point system"):
                await StatIngestService(db).ingest(first_match_payload(), schedule.id)
            assert await count_rows(db, Match) == 0
            await db.close()

        asyncio.run(scenario())

    def test_malformed_snapshot_writes_nothing(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            payload = first_match_payload()
            del payload['allinfo']['TotalPlayerList'][2]['damage']

            with pytest.raises(ValidationError, match="damage"):
                await StatIngestService(db).ingest(payload, t.first.id)
            assert await count_rows(db, Match) == 0
            assert await count_rows(db, PlayerStat) == 0
            await db.close()

        asyncio.run(scenario())


class TestUploadOutcome:
    """Tests for the tagged upload wrapper."""

    def test_success(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            outcome = await StatIngestService(db).upload(first_match_payload(), t.first.id)
            assert outcome.status == 'success'
            assert outcome.report.players_recorded == 4
            await db.close()

        asyncio.run(scenario())

    def test_error_message(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            service = StatIngestService(db)
            await service.upload(first_match_payload(), t.first.id)
            outcome = await service.upload(first_match_payload(), t.second.id)
            assert outcome.status == 'error'
            assert 'G-1001' in outcome.message
            assert outcome.report is None
            await db.close()

        asyncio.run(scenario())


class TestInvalidationHook:
    """The ingest service notifies hooks with the schedule's groups."""

    def test_hook_called_after_commit(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            calls = []

            async def hook(group_ids):
                async with db.get_session() as session:
                    schedule = await session.get(Schedule, t.combined.id)
                    calls.append((sorted(group_ids), schedule.match_id is not None))

            service = StatIngestService(db)
            service.register_invalidation_hook(hook)
            payload = snapshot_payload('G-3001', [player_record('1001', 1, rank=1)])
            await service.ingest(payload, t.combined.id)

            assert calls == [(sorted([t.group_a.id, t.group_b.id]), True)]
            await db.close()

        asyncio.run(scenario())

    def test_hook_not_called_on_rejection(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            await seed_tournament(db)
            calls = []

            async def hook(group_ids):
                calls.append(group_ids)

            service = StatIngestService(db)
            service.register_invalidation_hook(hook)
            await service.upload(first_match_payload(), 999)
            assert calls == []
            await db.close()

        asyncio.run(scenario())


class TestNegativeCounters:
    """Negative counters would push MVP outside its bounds; the upload is refused."""

    def test_negative_damage_writes_nothing(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            payload = snapshot_payload('G-6001', [
                player_record('1001', 1, rank=1, damage=500.0, survival=1000.0),
                player_record('2001', 2, rank=2, damage=-900.0, survival=-800.0),
            ])
            outcome = await StatIngestService(db).upload(payload, t.first.id)

            assert outcome.status == 'error'
            assert 'non-negative' in outcome.message
            assert await count_rows(db, Match) == 0
            assert await count_rows(db, PlayerStat) == 0
            await db.close()

        asyncio.run(scenario())


class TestGameLocks:
    """Per-game locks do not outlive the uploads holding them."""

    def test_lock_released_after_ingest(self, make_db, seed_tournament):
        async def scenario():
            db = await make_db()
            t = await seed_tournament(db)
            service = StatIngestService(db)
            await service.ingest(first_match_payload(), t.first.id)
            await service.upload(first_match_payload(), t.second.id)
            await service.upload(second_match_payload(), 999)

            gc.collect()
            assert len(service._locks) == 0
            await db.close()

        asyncio.run(scenario())

    def test_lock_shared_while_held(self, make_db):
        async def scenario():
            db = await make_db()
            service = StatIngestService(db)
            lock = await service._lock_for('G-7001')
            assert await service._lock_for('G-7001') is lock
            assert await service._lock_for('G-7002') is not lock
            await db.close()

        asyncio.run(scenario())
