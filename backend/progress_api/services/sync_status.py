from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from progress_api.core.env import ReportingEnv
from progress_api.models.reporting import SyncStatus
from progress_api.repositories.company_settings import CompanyConfig

logger = logging.getLogger(__name__)

MODE_FIRST = 'first'
MODE_FULL = 'full'
MODE_INCREMENTAL = 'incremental'

STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'


def resolve_sync_mode(
    has_status: bool,
    configured_mode: str | None,
    last_status: str | None,
    seconds_since_last_sync: int,
    window_hours: int,
) -> str:
    """Mode for the next read; depends on nothing but its arguments."""
    if not has_status:
        return MODE_FIRST
    mode = str(configured_mode or 'auto').strip().lower()
    if mode in ('disabled', 'full'):
        return MODE_FULL
    if str(last_status or '').strip().lower() == STATUS_FAILED:
        return MODE_FULL
    if int(seconds_since_last_sync) > max(1, int(window_hours)) * 3600:
        return MODE_FULL
    return MODE_INCREMENTAL


def _get(db: Session, companyid: int, token_hash: str) -> SyncStatus | None:
    return (
        db.query(SyncStatus)
        .filter(SyncStatus.companyid == companyid, SyncStatus.token_hash == token_hash)
        .first()
    )


class SyncStatusLedger:
    def __init__(self, env: ReportingEnv) -> None:
        self.env = env

    def get(self, companyid: int, token_hash: str) -> SyncStatus | None:
        return _get(self.env.db, companyid, token_hash)

    def determine_sync_mode(self, companyid: int, token_hash: str, config: CompanyConfig | None = None) -> tuple[str, SyncStatus | None]:
        """Resolved mode plus the status row it was derived from (None on first contact).

        The company's configured mode and window take precedence over the
        copy stored on the status row, so a settings change applies on the
        very next request.
        """
        row = self.get(companyid, token_hash)
        if row is None:
            return MODE_FIRST, None
        configured_mode = config.sync_mode if config is not None else row.sync_mode
        window_hours = config.sync_window_hours if config is not None else row.sync_window_hours
        mode = resolve_sync_mode(
            True,
            configured_mode,
            row.last_sync_status,
            self.env.now() - int(row.last_sync_timestamp or 0),
            window_hours,
        )
        return mode, row

    def record_attempt(
        self,
        companyid: int,
        token_hash: str,
        *,
        records: int,
        status: str = STATUS_SUCCESS,
        error: str | None = None,
        mode: str | None = None,
        config: CompanyConfig | None = None,
    ) -> SyncStatus:
        db = self.env.db
        now = self.env.now()
        row = _get(db, companyid, token_hash)
        if row is None:
            row = SyncStatus(
                companyid=int(companyid),
                token_hash=token_hash,
                sync_mode='auto',
                sync_window_hours=24,
                total_syncs=0,
                created_at=now,
            )
            db.add(row)
        if config is not None:
            row.sync_mode = config.sync_mode
            row.sync_window_hours = config.sync_window_hours
        row.last_sync_timestamp = now
        row.last_sync_records = int(records or 0)
        row.last_sync_status = status
        row.last_sync_error = (str(error)[:2000] if error else None)
        row.last_sync_mode = mode
        row.total_syncs = int(row.total_syncs or 0) + 1
        row.updated_at = now
        db.commit()
        logger.debug('[sync-status:%s] %s mode=%s records=%s', companyid, status, mode, records)
        return row

    def list_statuses(self, companyid: int | None = None) -> list[SyncStatus]:
        query = self.env.db.query(SyncStatus)
        if companyid:
            query = query.filter(SyncStatus.companyid == companyid)
        return query.order_by(SyncStatus.companyid.asc(), SyncStatus.updated_at.desc()).all()
