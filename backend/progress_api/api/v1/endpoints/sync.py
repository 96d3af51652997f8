import json

from fastapi import APIRouter, Depends, Query

from progress_api.core.deps import get_env, require_permission
from progress_api.core.env import ReportingEnv
from progress_api.repositories.request_log import usage_stats
from progress_api.schemas.sync import (
    CacheSweepIn,
    CacheSweepOut,
    CleanupIn,
    CleanupOut,
    CompanyResyncIn,
    PopulateIn,
    PopulateOut,
    PurgeIn,
    ReportingStatsOut,
    SyncPassOut,
    SyncRunIn,
    SyncRunOut,
    SyncStatusOut,
)
from progress_api.services.response_cache import ResponseCache
from progress_api.services.sync_engine import SyncEngine
from progress_api.services.sync_status import SyncStatusLedger

router = APIRouter()


def _actor(user: dict) -> str:
    return str(user.get('sub', 'system'))


@router.post('/run', response_model=SyncPassOut)
def run_sync(
    payload: SyncRunIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:run')),
):
    """Manual trigger for the incremental pass; runs synchronously."""
    stats = SyncEngine(env).run_incremental_pass(
        company_id=payload.company_id,
        lookback_hours=payload.lookback_hours,
        max_seconds=payload.max_seconds,
        actor=_actor(user),
    )
    return stats.as_dict()


@router.post('/populate', response_model=PopulateOut)
def populate(
    payload: PopulateIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:run')),
):
    return SyncEngine(env).full_populate(
        company_id=payload.company_id,
        batch_size=payload.batch_size,
        actor=_actor(user),
    )


@router.post('/cleanup', response_model=CleanupOut)
def cleanup(
    payload: CleanupIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:run')),
):
    return SyncEngine(env).cleanup_orphans(company_id=payload.company_id, actor=_actor(user))


@router.post('/resync', response_model=SyncPassOut)
def resync(
    payload: CompanyResyncIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:run')),
):
    engine = SyncEngine(env)
    if payload.user_id is not None:
        written = engine.sync_user_data(payload.user_id, payload.company_id)
        ResponseCache(env).invalidate_company(payload.company_id)
        return {'companies_processed': 1, 'records_updated': written}
    return engine.resync_company(payload.company_id, actor=_actor(user)).as_dict()


@router.post('/purge')
def purge(
    payload: PurgeIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:run')),
):
    removed = SyncEngine(env).purge(payload.company_id, deleted_only=payload.deleted_only)
    return {'companyid': payload.company_id, 'removed': removed}


@router.get('/status', response_model=list[SyncStatusOut])
def sync_status(
    company_id: int | None = Query(default=None, ge=1),
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:read')),
):
    rows = SyncStatusLedger(env).list_statuses(company_id)
    return [
        {
            'companyid': r.companyid,
            'token_hash': r.token_hash,
            'last_sync_timestamp': int(r.last_sync_timestamp or 0),
            'sync_mode': r.sync_mode,
            'sync_window_hours': int(r.sync_window_hours or 0),
            'last_sync_mode': r.last_sync_mode,
            'last_sync_records': int(r.last_sync_records or 0),
            'last_sync_status': r.last_sync_status,
            'last_sync_error': r.last_sync_error,
            'total_syncs': int(r.total_syncs or 0),
        }
        for r in rows
    ]


@router.get('/runs', response_model=list[SyncRunOut])
def sync_runs(
    limit: int = Query(default=20, ge=1, le=200),
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:read')),
):
    out = []
    for run in SyncEngine(env).recent_runs(limit):
        out.append(
            {
                'job_id': run.job_id,
                'kind': run.kind,
                'companyid': run.companyid,
                'running': bool(run.running),
                'partial': bool(run.partial),
                'stats': json.loads(run.stats_json or '{}'),
                'error': run.error,
                'started_at': run.started_at.isoformat() if run.started_at else None,
                'finished_at': run.finished_at.isoformat() if run.finished_at else None,
                'duration_sec': run.duration_sec,
                'actor': run.actor,
            }
        )
    return out


@router.get('/stats', response_model=ReportingStatsOut)
def reporting_stats(
    company_id: int | None = Query(default=None, ge=1),
    days: int = Query(default=7, ge=1, le=365),
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:read')),
):
    stats = SyncEngine(env).reporting_stats(company_id)
    stats['cache'] = ResponseCache(env).stats(company_id)
    stats['usage'] = usage_stats(env.db, company_id, days, env.now())
    return stats


@router.post('/cache/sweep', response_model=CacheSweepOut)
def sweep_cache(
    payload: CacheSweepIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('sync:run')),
):
    hours = payload.max_age_hours if payload.max_age_hours is not None else env.settings.cache_sweep_max_age_hours
    return {'deleted': ResponseCache(env).sweep(hours)}
