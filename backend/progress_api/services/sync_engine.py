import json
import logging
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.exc import IntegrityError

from progress_api.core.env import ReportingEnv
from progress_api.core.errors import SyncInProgressError
from progress_api.db.upsert import upsert_rows
from progress_api.models.reporting import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    ReportingRecord,
    SyncLock,
    SyncRun,
)
from progress_api.models.source import (
    Company,
    CompanyCourse,
    CompanyUser,
    Course,
    Enrol,
    LmsUser,
    UserEnrolment,
)
from progress_api.repositories import company_settings
from progress_api.services.response_cache import ResponseCache
from progress_api.services.source_projection import changed_keys, company_user_ids, fetch_progress

logger = logging.getLogger(__name__)

SYNC_LOCK_NAME = 'progress_reporting_sync'
KEY_COLUMNS = ['userid', 'courseid', 'companyid']
UPDATE_COLUMNS = [
    'firstname',
    'lastname',
    'email',
    'coursename',
    'timecompleted',
    'timestarted',
    'percentage',
    'status',
    'last_updated',
    'is_deleted',
    'updated_at',
]
_SOFT_DELETE_CHUNK = 500


class RecomputeOutcome(str, Enum):
    CREATED = 'created'
    UPDATED = 'updated'
    DELETED = 'deleted'
    UNCHANGED = 'unchanged'
    FAILED = 'failed'

    @property
    def wrote(self) -> bool:
        return self in (RecomputeOutcome.CREATED, RecomputeOutcome.UPDATED, RecomputeOutcome.DELETED)


@dataclass
class SyncPassStats:
    job_id: str | None = None
    companies_processed: int = 0
    companies_skipped: int = 0
    companies_remaining: int = 0
    keys_touched: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_deleted: int = 0
    records_unchanged: int = 0
    row_errors: int = 0
    errors: int = 0
    companies_with_errors: list[int] = field(default_factory=list)
    partial: bool = False
    duration_sec: int = 0

    def count(self, outcome: RecomputeOutcome) -> None:
        if outcome is RecomputeOutcome.CREATED:
            self.records_created += 1
        elif outcome is RecomputeOutcome.UPDATED:
            self.records_updated += 1
        elif outcome is RecomputeOutcome.DELETED:
            self.records_deleted += 1
        elif outcome is RecomputeOutcome.UNCHANGED:
            self.records_unchanged += 1
        else:
            self.row_errors += 1

    def as_dict(self) -> dict:
        return asdict(self)


class SyncEngine:
    """Keeps ``progress_reporting`` converged with the host tables.

    Every pass (incremental, populate, cleanup, company resync) runs under
    one advisory lock row and is recorded in ``progress_sync_runs``.
    """

    def __init__(self, env: ReportingEnv, holder: str | None = None) -> None:
        self.env = env
        self.db = env.db
        self.holder = holder or uuid.uuid4().hex
        self.cache = ResponseCache(env)

    # -- advisory lock -------------------------------------------------

    def _acquire_lock(self) -> None:
        db = self.db
        now = self.env.now()
        try:
            db.add(SyncLock(name=SYNC_LOCK_NAME, holder=self.holder, acquired_at=now))
            db.commit()
            return
        except IntegrityError:
            db.rollback()
        current = db.query(SyncLock).filter(SyncLock.name == SYNC_LOCK_NAME).first()
        if current is None:
            return self._acquire_lock()
        stale_after = int(self.env.settings.sync_lock_stale_seconds)
        age = now - int(current.acquired_at or 0)
        if age <= stale_after:
            raise SyncInProgressError(
                details={'holder': current.holder, 'acquired_at': int(current.acquired_at), 'age_seconds': age},
            )
        # Compare-and-set so only one contender takes over a stale lock.
        taken = (
            db.query(SyncLock)
            .filter(SyncLock.name == SYNC_LOCK_NAME, SyncLock.acquired_at == current.acquired_at)
            .update({'holder': self.holder, 'acquired_at': now}, synchronize_session=False)
        )
        db.commit()
        if not taken:
            raise SyncInProgressError()
        logger.warning('[sync] took over stale lock from %s (age=%ss)', current.holder, age)

    def _release_lock(self) -> None:
        try:
            self.db.rollback()
            self.db.query(SyncLock).filter(
                SyncLock.name == SYNC_LOCK_NAME, SyncLock.holder == self.holder
            ).delete(synchronize_session=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception('[sync] failed to release lock %s', self.holder)

    @contextmanager
    def locked(self):
        self._acquire_lock()
        try:
            yield
        finally:
            self._release_lock()

    # -- run ledger ----------------------------------------------------

    def _utc(self) -> datetime:
        return datetime.fromtimestamp(self.env.now(), timezone.utc).replace(tzinfo=None)

    def _start_run(self, kind: str, companyid: int | None, actor: str) -> SyncRun:
        run = SyncRun(
            job_id=uuid.uuid4().hex,
            kind=kind,
            companyid=companyid,
            running=True,
            started_at=self._utc(),
            actor=actor,
        )
        self.db.add(run)
        self.db.commit()
        return run

    def _finish_run(self, job_id: str, stats: dict, error: str | None = None) -> None:
        self.db.rollback()
        run = self.db.query(SyncRun).filter(SyncRun.job_id == job_id).first()
        if run is None:
            return
        finished = self._utc()
        run.running = False
        run.partial = bool(stats.get('partial'))
        run.stats_json = json.dumps(stats, ensure_ascii=False, default=str)
        run.error = error
        run.finished_at = finished
        if run.started_at:
            run.duration_sec = round((finished - run.started_at).total_seconds(), 2)
        self.db.commit()

    @contextmanager
    def _tracked(self, kind: str, companyid: int | None, actor: str, stats_of):
        with self.locked():
            run = self._start_run(kind, companyid, actor)
            job_id = run.job_id
            try:
                yield job_id
            except Exception as exc:
                self._finish_run(job_id, stats_of(), error=str(exc))
                raise
            self._finish_run(job_id, stats_of())

    # -- single key ----------------------------------------------------

    def _reporting_row(self, userid: int, courseid: int, companyid: int) -> ReportingRecord | None:
        return (
            self.db.query(ReportingRecord)
            .filter(
                ReportingRecord.userid == userid,
                ReportingRecord.courseid == courseid,
                ReportingRecord.companyid == companyid,
            )
            .first()
        )

    def recompute_and_upsert(self, userid: int, courseid: int, companyid: int) -> RecomputeOutcome:
        """Re-derive one key from the host tables. Logs and reports failures, never raises."""
        db = self.db
        try:
            now = self.env.now()
            rows = fetch_progress(db, companyid, userid=userid, courseid=courseid, limit=1)
            existing = self._reporting_row(userid, courseid, companyid)
            if not rows:
                if existing is None or existing.is_deleted:
                    return RecomputeOutcome.UNCHANGED
                existing.is_deleted = 1
                existing.last_updated = now
                existing.updated_at = now
                db.commit()
                return RecomputeOutcome.DELETED
            values = dict(rows[0])
            values.update({'last_updated': now, 'is_deleted': 0, 'created_at': now, 'updated_at': now})
            upsert_rows(db, ReportingRecord, [values], index_elements=KEY_COLUMNS, update_columns=UPDATE_COLUMNS)
            db.commit()
            return RecomputeOutcome.UPDATED if existing is not None else RecomputeOutcome.CREATED
        except Exception:
            db.rollback()
            logger.exception('[sync:%s] recompute failed user=%s course=%s', companyid, userid, courseid)
            return RecomputeOutcome.FAILED

    # -- incremental pass ----------------------------------------------

    def _company_ids(self, company_id: int | None) -> list[int]:
        if company_id:
            return [int(company_id)]
        return [int(r[0]) for r in self.db.query(Company.id).order_by(Company.id.asc()).all()]

    def _sync_company_changes(self, companyid: int, cutoff: int, stats: SyncPassStats) -> int:
        keys = sorted(changed_keys(self.db, companyid, cutoff))
        for userid, courseid in keys:
            stats.count(self.recompute_and_upsert(userid, courseid, companyid))
        stats.keys_touched += len(keys)
        return len(keys)

    def _previous_pass_start(self, company_id: int | None, job_id: str) -> int | None:
        """Start of the last complete incremental pass that covered ``company_id``.

        Failed and partial passes do not count: they may have left changes behind.
        """
        scope = SyncRun.companyid.is_(None)
        if company_id:
            scope = or_(scope, SyncRun.companyid == int(company_id))
        run = (
            self.db.query(SyncRun)
            .filter(
                SyncRun.kind == 'incremental',
                SyncRun.job_id != job_id,
                SyncRun.running.is_(False),
                SyncRun.partial.is_(False),
                SyncRun.error.is_(None),
                scope,
            )
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .first()
        )
        if run is None or run.started_at is None:
            return None
        return int(run.started_at.replace(tzinfo=timezone.utc).timestamp())

    def run_incremental_pass(
        self,
        company_id: int | None = None,
        lookback_hours: int | None = None,
        max_seconds: int | None = None,
        actor: str = 'system',
    ) -> SyncPassStats:
        cfg = self.env.settings
        lookback = max(1, int(lookback_hours or cfg.auto_sync_hours))
        budget = max(1, int(max_seconds or cfg.max_sync_time))
        margin = max(0, int(cfg.sync_time_margin_seconds))
        started = self.env.now()
        stats = SyncPassStats()

        with self._tracked('incremental', company_id, actor, stats.as_dict) as job_id:
            stats.job_id = job_id
            cutoff = started - lookback * 3600
            previous = self._previous_pass_start(company_id, job_id)
            if previous is not None:
                cutoff = min(cutoff, previous - margin)
            companies = self._company_ids(company_id)
            logger.info(
                '[sync] incremental start companies=%s cutoff=%s max_seconds=%s',
                len(companies), cutoff, budget,
            )
            for position, companyid in enumerate(companies):
                elapsed = self.env.now() - started
                if elapsed > budget - margin:
                    stats.partial = True
                    stats.companies_remaining = len(companies) - position
                    logger.warning(
                        '[sync] approaching time limit after %ss, stopping with %s companies not processed',
                        elapsed, stats.companies_remaining,
                    )
                    break
                try:
                    if not company_settings.has_settings(self.db, companyid):
                        stats.companies_skipped += 1
                        logger.info('[sync:%s] no API settings, skipping', companyid)
                        continue
                    errors_before = stats.row_errors
                    touched = self._sync_company_changes(companyid, cutoff, stats)
                    cleared = self.cache.invalidate_company(companyid)
                    stats.companies_processed += 1
                    if stats.row_errors > errors_before:
                        stats.errors += stats.row_errors - errors_before
                        stats.companies_with_errors.append(companyid)
                    logger.info('[sync:%s] done keys=%s cache_cleared=%s', companyid, touched, cleared)
                except Exception:
                    self.db.rollback()
                    stats.errors += 1
                    stats.companies_with_errors.append(companyid)
                    logger.exception('[sync:%s] company sync failed', companyid)
            stats.duration_sec = self.env.now() - started
            logger.info(
                '[sync] incremental finished in %ss processed=%s created=%s updated=%s deleted=%s errors=%s partial=%s',
                stats.duration_sec, stats.companies_processed, stats.records_created,
                stats.records_updated, stats.records_deleted, stats.errors, stats.partial,
            )
        return stats

    # -- bootstrap -----------------------------------------------------

    def _populate_course_ids(self, companyid: int) -> list[int]:
        enabled = company_settings.get_enabled_courses(self.db, companyid)
        if enabled:
            return enabled
        return [int(c.id) for c in company_settings.get_company_courses(self.db, companyid)]

    def _populate_company(self, companyid: int, batch_size: int) -> tuple[int, int]:
        db = self.db
        course_ids = self._populate_course_ids(companyid)
        if not course_ids:
            return 0, 0
        processed = inserted = 0
        offset = 0
        while True:
            rows = fetch_progress(db, companyid, course_ids=course_ids, limit=batch_size, offset=offset)
            if not rows:
                break
            user_ids = {r['userid'] for r in rows}
            existing = {
                (int(u), int(c))
                for u, c in db.query(ReportingRecord.userid, ReportingRecord.courseid)
                .filter(ReportingRecord.companyid == companyid, ReportingRecord.userid.in_(user_ids))
                .all()
            }
            now = self.env.now()
            fresh = []
            for row in rows:
                key = (row['userid'], row['courseid'])
                if key in existing:
                    continue
                existing.add(key)
                fresh.append({**row, 'last_updated': now, 'is_deleted': 0, 'created_at': now, 'updated_at': now})
            if fresh:
                db.bulk_insert_mappings(ReportingRecord, fresh)
            db.commit()
            processed += len(rows)
            inserted += len(fresh)
            offset += batch_size
            if len(rows) < batch_size:
                break
        return processed, inserted

    def full_populate(self, company_id: int | None = None, batch_size: int | None = None, actor: str = 'system') -> dict:
        """Insert reporting rows that do not exist yet; existing rows are left alone."""
        size = max(1, int(batch_size or self.env.settings.populate_batch_size))
        started = self.env.now()
        result = {
            'success': True,
            'total_processed': 0,
            'total_inserted': 0,
            'companies_processed': 0,
            'duration': 0,
            'errors': [],
        }
        with self._tracked('populate', company_id, actor, lambda: dict(result)) as job_id:
            result['job_id'] = job_id
            for companyid in self._company_ids(company_id):
                try:
                    processed, inserted = self._populate_company(companyid, size)
                except Exception as exc:
                    self.db.rollback()
                    logger.exception('[populate:%s] failed', companyid)
                    result['errors'].append(f'company {companyid}: {exc}')
                    continue
                if processed:
                    result['companies_processed'] += 1
                    self.cache.invalidate_company(companyid)
                result['total_processed'] += processed
                result['total_inserted'] += inserted
                logger.info('[populate:%s] processed=%s inserted=%s', companyid, processed, inserted)
            result['success'] = not result['errors']
            result['duration'] = self.env.now() - started
        return result

    # -- cleanup -------------------------------------------------------

    def _soft_delete(self, ids: list[int], now: int) -> int:
        total = 0
        for i in range(0, len(ids), _SOFT_DELETE_CHUNK):
            chunk = ids[i:i + _SOFT_DELETE_CHUNK]
            total += self.db.query(ReportingRecord).filter(ReportingRecord.id.in_(chunk)).update(
                {'is_deleted': 1, 'last_updated': now, 'updated_at': now},
                synchronize_session=False,
            )
        self.db.commit()
        return int(total)

    def _orphan_conditions(self):
        member = exists().where(
            CompanyUser.userid == ReportingRecord.userid,
            CompanyUser.companyid == ReportingRecord.companyid,
            LmsUser.id == CompanyUser.userid,
            LmsUser.deleted == 0,
            LmsUser.suspended == 0,
        )
        course = exists().where(
            CompanyCourse.courseid == ReportingRecord.courseid,
            CompanyCourse.companyid == ReportingRecord.companyid,
            Course.id == CompanyCourse.courseid,
            Course.visible == 1,
        )
        enrolment = exists().where(
            UserEnrolment.userid == ReportingRecord.userid,
            UserEnrolment.enrolid == Enrol.id,
            Enrol.courseid == ReportingRecord.courseid,
            UserEnrolment.status == 0,
        )
        return (('users_removed', ~member), ('courses_removed', ~course), ('enrolments_removed', ~enrolment))

    def cleanup_orphans(self, company_id: int | None = None, actor: str = 'system') -> dict:
        """Soft-delete rows whose user, course or enrolment no longer qualifies."""
        result = {'users_removed': 0, 'courses_removed': 0, 'enrolments_removed': 0, 'total': 0}
        with self._tracked('cleanup', company_id, actor, lambda: dict(result)):
            now = self.env.now()
            touched: set[int] = set()
            for label, condition in self._orphan_conditions():
                query = self.db.query(ReportingRecord.id, ReportingRecord.companyid).filter(
                    ReportingRecord.is_deleted == 0, condition
                )
                if company_id:
                    query = query.filter(ReportingRecord.companyid == company_id)
                found = query.all()
                result[label] = self._soft_delete([int(r[0]) for r in found], now)
                touched.update(int(r[1]) for r in found)
            result['total'] = result['users_removed'] + result['courses_removed'] + result['enrolments_removed']
            for companyid in sorted(touched):
                self.cache.invalidate_company(companyid)
            logger.info('[cleanup] %s', result)
        return result

    # -- targeted resync -----------------------------------------------

    def sync_user_data(self, userid: int, companyid: int) -> int:
        """Recompute one user across the company's reported courses; returns writes."""
        written = 0
        for courseid in self._populate_course_ids(companyid):
            if self.recompute_and_upsert(userid, courseid, companyid).wrote:
                written += 1
        return written

    def resync_company(self, companyid: int, actor: str = 'system') -> SyncPassStats:
        """Recompute every active user of a company, regardless of change times."""
        stats = SyncPassStats()
        started = self.env.now()
        with self._tracked('company_resync', companyid, actor, stats.as_dict) as job_id:
            stats.job_id = job_id
            course_ids = self._populate_course_ids(companyid)
            for userid in company_user_ids(self.db, companyid):
                for courseid in course_ids:
                    stats.count(self.recompute_and_upsert(userid, courseid, companyid))
                    stats.keys_touched += 1
            stats.companies_processed = 1
            self.cache.invalidate_company(companyid)
            stats.duration_sec = self.env.now() - started
        return stats

    # -- administration ------------------------------------------------

    def reporting_stats(self, company_id: int | None = None) -> dict:
        query = self.db.query(ReportingRecord)
        if company_id:
            query = query.filter(ReportingRecord.companyid == company_id)
        active = query.filter(ReportingRecord.is_deleted == 0)
        last_update = query.with_entities(func.max(ReportingRecord.last_updated)).scalar()
        return {
            'total_records': query.count(),
            'active_records': active.count(),
            'deleted_records': query.filter(ReportingRecord.is_deleted == 1).count(),
            'completed_courses': active.filter(ReportingRecord.status == STATUS_COMPLETED).count(),
            'in_progress_courses': active.filter(ReportingRecord.status == STATUS_IN_PROGRESS).count(),
            'last_update': int(last_update) if last_update else None,
        }

    def purge(self, company_id: int, deleted_only: bool = True) -> int:
        """Physical delete; the only path that removes reporting rows for good."""
        query = self.db.query(ReportingRecord).filter(ReportingRecord.companyid == company_id)
        if deleted_only:
            query = query.filter(ReportingRecord.is_deleted == 1)
        removed = query.delete(synchronize_session=False)
        self.db.commit()
        self.cache.invalidate_company(company_id)
        logger.warning('[purge:%s] removed %s reporting rows (deleted_only=%s)', company_id, removed, deleted_only)
        return int(removed or 0)

    def recent_runs(self, limit: int = 20) -> list[SyncRun]:
        return self.db.query(SyncRun).order_by(SyncRun.id.desc()).limit(max(1, int(limit))).all()
