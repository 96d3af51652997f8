from __future__ import annotations

import logging

from progress_api.core.env import ReportingEnv
from progress_api.repositories.request_log import cleanup_logs
from progress_api.services.response_cache import ResponseCache
from progress_api.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


def run_scheduled_sync(env: ReportingEnv, actor: str = 'scheduler') -> dict:
    """Hourly maintenance: incremental pass, then cache sweep, orphan cleanup and log retention.

    Lock conflicts and critical pass errors propagate to the caller; the
    housekeeping steps only log when they fail.
    """
    cfg = env.settings
    engine = SyncEngine(env)
    stats = engine.run_incremental_pass(
        lookback_hours=cfg.auto_sync_hours,
        max_seconds=cfg.max_sync_time,
        actor=actor,
    )
    out = {'sync': stats.as_dict(), 'cache_swept': 0, 'orphans_removed': 0, 'logs_deleted': 0}
    try:
        out['cache_swept'] = ResponseCache(env).sweep(cfg.cache_sweep_max_age_hours)
    except Exception:
        env.db.rollback()
        logger.exception('[scheduled-sync] cache sweep failed')
    try:
        out['orphans_removed'] = engine.cleanup_orphans(actor=actor)['total']
    except Exception:
        env.db.rollback()
        logger.exception('[scheduled-sync] orphan cleanup failed')
    try:
        out['logs_deleted'] = cleanup_logs(env.db, cfg.log_retention_days, env.now())
    except Exception:
        env.db.rollback()
        logger.exception('[scheduled-sync] log cleanup failed')
    return out
