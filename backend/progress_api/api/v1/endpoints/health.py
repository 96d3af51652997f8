from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from progress_api.core.config import settings
from progress_api.core.deps import require_permission
from progress_api.core.request_metrics import summary as request_metrics_summary
from progress_api.db.session import get_db
from progress_api.models.reporting import SyncRun

router = APIRouter()


@router.get('/health')
def health(db: Session = Depends(get_db)):
    """
    Health check. Returns 200 with db_ok true when the LMS database is reachable,
    503 otherwise.
    """
    db_ok = False
    try:
        db.execute(text('SELECT 1'))
        db_ok = True
    except Exception:
        db.rollback()
    if not db_ok:
        return JSONResponse(
            status_code=503,
            content={
                'ok': False,
                'service': settings.app_name,
                'db_ok': False,
                'message': 'Database unreachable',
            },
        )
    return {'ok': True, 'service': settings.app_name, 'db_ok': True}


@router.get('/health/perf')
def health_perf(db: Session = Depends(get_db), _user=Depends(require_permission('system:read'))):
    """Request latency percentiles plus the most recent sync run. Requires system:read."""
    last_run = db.query(SyncRun).order_by(SyncRun.id.desc()).first()
    return {
        'service': settings.app_name,
        'request_latency': request_metrics_summary(),
        'last_sync_run': {
            'job_id': last_run.job_id,
            'kind': last_run.kind,
            'running': bool(last_run.running),
            'partial': bool(last_run.partial),
            'error': last_run.error,
            'finished_at': last_run.finished_at.isoformat() if last_run.finished_at else None,
        } if last_run else None,
    }
