#!/usr/bin/env python3
"""
Operator CLI for the reporting table.

Usage:
  python scripts/sync_reporting_data.py changed [--company-id 12] [--hours 24] [--max-seconds 600]
  python scripts/sync_reporting_data.py full [--company-id 12] [--batch-size 500]
  python scripts/sync_reporting_data.py populate [--company-id 12]
  python scripts/sync_reporting_data.py cleanup [--company-id 12]
  python scripts/sync_reporting_data.py resync --company-id 12 [--user-id 345]
  python scripts/sync_reporting_data.py stats [--company-id 12] [--json]

`full` is populate followed by an orphan cleanup.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

from progress_api.core.env import ReportingEnv  # noqa: E402
from progress_api.core.errors import SyncInProgressError  # noqa: E402
from progress_api.core.logging_config import configure_logging  # noqa: E402
from progress_api.db.session import SessionLocal  # noqa: E402
from progress_api.services.response_cache import ResponseCache  # noqa: E402
from progress_api.services.sync_engine import SyncEngine  # noqa: E402

logger = logging.getLogger('sync_reporting_data')

ACTIONS = ('changed', 'full', 'populate', 'cleanup', 'resync', 'stats')


def _print(result: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
        return
    for key, value in result.items():
        print(f'{key}: {value}')


def run(args: argparse.Namespace) -> dict:
    db = SessionLocal()
    try:
        env = ReportingEnv(db=db)
        engine = SyncEngine(env, holder=f'cli-{args.action}')
        actor = 'cli'
        if args.action == 'changed':
            return engine.run_incremental_pass(
                company_id=args.company_id,
                lookback_hours=args.hours,
                max_seconds=args.max_seconds,
                actor=actor,
            ).as_dict()
        if args.action == 'populate':
            return engine.full_populate(company_id=args.company_id, batch_size=args.batch_size, actor=actor)
        if args.action == 'full':
            populated = engine.full_populate(company_id=args.company_id, batch_size=args.batch_size, actor=actor)
            cleaned = engine.cleanup_orphans(company_id=args.company_id, actor=actor)
            return {'populate': populated, 'cleanup': cleaned}
        if args.action == 'cleanup':
            return engine.cleanup_orphans(company_id=args.company_id, actor=actor)
        if args.action == 'resync':
            if not args.company_id:
                raise SystemExit('resync requires --company-id')
            if args.user_id:
                written = engine.sync_user_data(args.user_id, args.company_id)
                ResponseCache(env).invalidate_company(args.company_id)
                return {'companyid': args.company_id, 'userid': args.user_id, 'records_written': written}
            return engine.resync_company(args.company_id, actor=actor).as_dict()
        stats = engine.reporting_stats(args.company_id)
        stats['cache'] = ResponseCache(env).stats(args.company_id)
        return stats
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description='Maintain the course progress reporting table')
    parser.add_argument('action', choices=ACTIONS)
    parser.add_argument('--company-id', type=int, default=None, help='Limit to one company')
    parser.add_argument('--user-id', type=int, default=None, help='resync: limit to one user')
    parser.add_argument('--hours', type=int, default=None, help='changed: lookback window in hours')
    parser.add_argument('--max-seconds', type=int, default=None, help='changed: time budget for the pass')
    parser.add_argument('--batch-size', type=int, default=None, help='populate/full: rows per batch')
    parser.add_argument('--json', action='store_true', help='JSON output')
    parser.add_argument('--log-level', default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    try:
        result = run(args)
    except SyncInProgressError as exc:
        logger.error('sync not started: %s %s', exc.message, exc.details)
        return 2
    _print(result, args.json)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
