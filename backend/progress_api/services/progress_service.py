import logging

from progress_api.core.env import ReportingEnv
from progress_api.core.errors import InvalidParameterError, LimitTooLargeError, ReportingUnavailableError
from progress_api.core.security import ApiPrincipal
from progress_api.models.reporting import ReportingRecord
from progress_api.repositories.company_settings import CompanyConfig, load_company_config
from progress_api.services.field_projection import project_rows
from progress_api.services.response_cache import ResponseCache, build_cache_key
from progress_api.services.source_projection import ORDER_BY_NAME, fetch_progress
from progress_api.services.sync_status import (
    MODE_FIRST,
    MODE_INCREMENTAL,
    STATUS_FAILED,
    STATUS_SUCCESS,
    SyncStatusLedger,
)

logger = logging.getLogger(__name__)

_RECORD_FIELDS = (
    'userid', 'courseid', 'companyid', 'firstname', 'lastname', 'email', 'coursename',
    'timecompleted', 'timestarted', 'percentage', 'status',
)


def _record_dict(row: ReportingRecord) -> dict:
    return {name: getattr(row, name) for name in _RECORD_FIELDS}


class ProgressService:
    """Read path of the course-progress API.

    Resolves the sync mode for the caller's (company, token), serves from
    the response cache or the reporting table, and falls back to the host
    tables while the reporting table is still empty or failing. Every
    attempt leaves a sync-status row behind; that row decides the next mode.
    """

    def __init__(self, env: ReportingEnv) -> None:
        self.env = env
        self.ledger = SyncStatusLedger(env)
        self.cache = ResponseCache(env)

    def validate_paging(self, limit: int, offset: int) -> None:
        max_records = int(self.env.settings.max_records)
        if int(limit) < 1:
            raise InvalidParameterError('limit must be at least 1', details={'limit': limit})
        if int(limit) > max_records:
            raise LimitTooLargeError(
                f'limit must not exceed {max_records}',
                details={'limit': limit, 'max_records': max_records},
            )
        if int(offset) < 0:
            raise InvalidParameterError('offset must not be negative', details={'offset': offset})

    def get_course_progress(self, principal: ApiPrincipal, limit: int = 100, offset: int = 0) -> list[dict]:
        self.validate_paging(limit, offset)
        limit, offset = int(limit), int(offset)
        companyid = principal.companyid
        token_hash = principal.token_hash

        config = load_company_config(self.env.db, companyid)
        mode, status_row = self.ledger.determine_sync_mode(companyid, token_hash, config)
        last_sync = int(status_row.last_sync_timestamp or 0) if status_row is not None else 0
        logger.debug('[progress:%s] mode=%s limit=%s offset=%s', companyid, mode, limit, offset)

        cache_key = build_cache_key(companyid, limit, offset, mode)
        if mode == MODE_INCREMENTAL and config.cache_enabled:
            cached = self.cache.get(cache_key, companyid)
            if cached is not None:
                logger.debug('[progress:%s] cache hit %s', companyid, cache_key)
                return cached

        course_ids = config.enabled_course_ids
        if config.has_course_settings and not course_ids:
            self.ledger.record_attempt(companyid, token_hash, records=0, mode=mode, config=config)
            return []

        try:
            records = self._query_reporting(companyid, mode, last_sync, course_ids or None, limit, offset)
            if not records and self._active_count(companyid) == 0:
                logger.info('[progress:%s] reporting table empty, serving from source tables', companyid)
                records = self._fallback(config, mode, course_ids or None, limit, offset)
        except ReportingUnavailableError as exc:
            self.ledger.record_attempt(
                companyid, token_hash, records=0, status=STATUS_FAILED, error=str(exc.__cause__ or exc),
                mode=mode, config=config,
            )
            raise
        except Exception as exc:
            self.env.db.rollback()
            logger.exception('[progress:%s] reporting query failed, serving from source tables', companyid)
            self.ledger.record_attempt(
                companyid, token_hash, records=0, status=STATUS_FAILED, error=str(exc), mode=mode, config=config,
            )
            records = self._fallback(config, mode, course_ids or None, limit, offset)
            return project_rows(records, config.enabled_fields)

        result = project_rows(records, config.enabled_fields)
        self.ledger.record_attempt(companyid, token_hash, records=len(result), status=STATUS_SUCCESS, mode=mode, config=config)
        if mode == MODE_INCREMENTAL and config.cache_enabled and result:
            self.cache.set(cache_key, companyid, result, int(config.cache_ttl_minutes) * 60)
        return result

    def _query_reporting(
        self,
        companyid: int,
        mode: str,
        last_sync: int,
        course_ids: list[int] | None,
        limit: int,
        offset: int,
    ) -> list[dict]:
        query = self.env.db.query(ReportingRecord).filter(
            ReportingRecord.companyid == companyid,
            ReportingRecord.is_deleted == 0,
        )
        if course_ids:
            query = query.filter(ReportingRecord.courseid.in_(course_ids))
        if mode == MODE_INCREMENTAL:
            query = query.filter(ReportingRecord.last_updated > last_sync).order_by(
                ReportingRecord.last_updated.desc(),
                ReportingRecord.userid.asc(),
                ReportingRecord.courseid.asc(),
            )
        else:
            query = query.order_by(ReportingRecord.userid.asc(), ReportingRecord.courseid.asc())
        return [_record_dict(row) for row in query.offset(offset).limit(limit).all()]

    def _active_count(self, companyid: int) -> int:
        return (
            self.env.db.query(ReportingRecord.id)
            .filter(ReportingRecord.companyid == companyid, ReportingRecord.is_deleted == 0)
            .count()
        )

    def _fallback(self, config: CompanyConfig, mode: str, course_ids: list[int] | None, limit: int, offset: int) -> list[dict]:
        completed_after = None
        if mode == MODE_FIRST and config.first_sync_hours > 0:
            completed_after = self.env.now() - int(config.first_sync_hours) * 3600
        try:
            return fetch_progress(
                self.env.db,
                config.companyid,
                course_ids=course_ids,
                completed_after=completed_after,
                order=ORDER_BY_NAME,
                limit=limit,
                offset=offset,
            )
        except Exception as exc:
            self.env.db.rollback()
            logger.exception('[progress:%s] source fallback failed', config.companyid)
            raise ReportingUnavailableError(details={'companyid': config.companyid}) from exc
