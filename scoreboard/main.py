import argparse
import asyncio
import json
import logging
import sys
import traceback

from scoreboard.config import Config
from scoreboard.database.database import Database
from scoreboard.data_models.results import select_view
from scoreboard.services.public_results import PublicResultsService
from scoreboard.services.result_cache import ResultCacheService
from scoreboard.services.stat_ingest import StatIngestService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Battle-royale tournament results engine')
    parser.add_argument('--database-url', help='Override DATABASE_URL')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init-db', help='Create database tables')

    upload = subparsers.add_parser('upload', help='Upload a telemetry snapshot for a schedule')
    upload.add_argument('snapshot', help='Path to the exported telemetry JSON')
    upload.add_argument('--schedule', type=int, required=True, help='Schedule id the match was played for')

    results = subparsers.add_parser('results', help='Print results of a group or combined lobby')
    results.add_argument('group_key', help="Group id, or member ids joined with ';'")
    results.add_argument('--view', choices=['team', 'player'], default='team',
                         help='Which side of the standings to print')

    subparsers.add_parser('missing', help='Warm the cache and list groups without uploaded matches')
    return parser


def _print_group(results, view: str):
    if not results.ok:
        print(f"[{results.status.value}] {results.group_id}: {results.message}")
        return

    print(f"{results.name} ({results.group_id})")
    for schedule in results.schedules:
        print(f"\nMatch {schedule.match_no} - {schedule.map_name}")
        standings = select_view(schedule.after_match_data, view)
        for row in standings.rows:
            if standings.kind == 'team':
                print(f"  {row.c_rank:>3}. {row.team:<24} {row.total_point:>4} pts  "
                      f"{row.kill:>3} kills  {row.wwcd} wwcd")
            else:
                print(f"  {row.c_rank:>3}. {row.in_game_name:<24} {row.mvp:>8.3f} mvp  "
                      f"{row.kill:>3} kills  {row.damage:>8.1f} dmg")


async def run(args) -> int:
    db = Database(args.database_url)
    await db.initialize()

    try:
        if args.command == 'init-db':
            print("Database ready")
            return 0

        cache = ResultCacheService(db)
        public = PublicResultsService(db, cache)

        if args.command == 'upload':
            with open(args.snapshot, encoding='utf-8') as f:
                payload = json.load(f)
            ingest = StatIngestService(db)
            ingest.register_invalidation_hook(public.invalidate)
            outcome = await ingest.upload(payload, args.schedule)
            print(f"[{outcome.status}] {outcome.message}")
            if outcome.report:
                for warning in outcome.report.warnings:
                    print(f"  warning: {warning.uid}: {warning.reason}")
            return 0 if outcome.status == 'success' else 1

        if args.command == 'results':
            results = await public.get_group_results(args.group_key)
            _print_group(results, args.view)
            return 0 if results.ok else 1

        if args.command == 'missing':
            await public.warm_cache()
            for key in await public.get_missing_groups():
                print(key)
            return 0
    finally:
        await db.close()

    return 1


async def main():
    """Main entry point"""
    Config.validate()
    args = build_parser().parse_args()

    try:
        return await run(args)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        return 1


def cli():
    exit_code = asyncio.run(main())
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
