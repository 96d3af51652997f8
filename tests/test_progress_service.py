import unittest
from unittest.mock import patch

import support

from progress_api.core.errors import InvalidParameterError, LimitTooLargeError, ReportingUnavailableError
from progress_api.core.security import ApiPrincipal
from progress_api.models.reporting import CacheEntry, ReportingRecord
from progress_api.repositories import company_settings
from progress_api.services.progress_service import ProgressService
from progress_api.services.sync_status import STATUS_FAILED, SyncStatusLedger

TOKEN_HASH = 'f' * 64
PRINCIPAL = ApiPrincipal(userid=500, companyid=10, token_hash=TOKEN_HASH)


class ProgressServiceTestCase(support.ReportingTestCase):
    def setUp(self):
        super().setUp()
        support.seed_company(self.db, 10)
        self.service = ProgressService(self.env)
        self.ledger = SyncStatusLedger(self.env)

    def add_record(self, userid, courseid=2, last_updated=support.NOW - 86400, is_deleted=0, companyid=10):
        self.db.add(
            ReportingRecord(
                userid=userid,
                courseid=courseid,
                companyid=companyid,
                firstname=f'User{userid}',
                lastname='Tester',
                email=f'user{userid}@example.com',
                coursename=f'Course {courseid}',
                timecompleted=0,
                timestarted=support.NOW - 10 * 86400,
                percentage=40.0,
                status='in_progress',
                last_updated=last_updated,
                is_deleted=is_deleted,
                created_at=last_updated,
                updated_at=last_updated,
            )
        )
        self.db.commit()

    def record_status_at(self, when, status='success'):
        current = self.clock.value
        self.clock.value = when
        self.ledger.record_attempt(10, TOKEN_HASH, records=1, status=status)
        self.clock.value = current

    def status_row(self):
        self.db.expire_all()
        return self.ledger.get(10, TOKEN_HASH)


class EmptyStoreFallbackTests(ProgressServiceTestCase):
    def setUp(self):
        super().setUp()
        for courseid in (2, 3, 4):
            support.seed_course(self.db, courseid, 10)
        for userid in range(100, 150):
            support.seed_user(self.db, userid, 10, lastname=f'L{userid:03d}')
            for courseid in (2, 3, 4):
                support.enrol_user(self.db, userid, courseid)
        company_settings.set_settings(self.db, 10, {'course_2': 1, 'course_3': 1, 'course_4': 1}, support.NOW)

    def test_first_call_serves_source_rows_and_records_status(self):
        rows = self.service.get_course_progress(PRINCIPAL, limit=1000, offset=0)
        self.assertEqual(len(rows), 150)
        self.assertEqual(rows[0]['lastname'], 'L100')
        self.assertEqual(self.db.query(ReportingRecord).count(), 0)

        status = self.status_row()
        self.assertEqual(status.last_sync_records, 150)
        self.assertEqual(status.last_sync_mode, 'first')
        self.assertEqual(status.last_sync_status, 'success')

    def test_rows_never_exceed_limit(self):
        self.assertEqual(len(self.service.get_course_progress(PRINCIPAL, limit=40, offset=0)), 40)
        self.assertEqual(len(self.service.get_course_progress(PRINCIPAL, limit=40, offset=140)), 10)

    def test_first_sync_window_applies_in_first_mode(self):
        company_settings.set_settings(self.db, 10, {'first_sync_hours': 24}, support.NOW)
        for userid in range(100, 150):
            support.complete_course(self.db, userid, 2, timecompleted=support.NOW - 10 * 86400)
        rows = self.service.get_course_progress(PRINCIPAL, limit=1000, offset=0)
        self.assertEqual(len(rows), 100)
        self.assertNotIn(2, {r['courseid'] for r in rows})

    def test_no_enabled_course_returns_empty(self):
        company_settings.set_settings(self.db, 10, {'course_2': 0, 'course_3': 0, 'course_4': 0}, support.NOW)
        self.assertEqual(self.service.get_course_progress(PRINCIPAL, limit=10, offset=0), [])
        status = self.status_row()
        self.assertEqual((status.last_sync_records, status.last_sync_status), (0, 'success'))

    def test_fallback_failure_is_unavailable(self):
        with patch('progress_api.services.progress_service.fetch_progress', side_effect=RuntimeError('source down')):
            with self.assertRaises(ReportingUnavailableError) as ctx:
                self.service.get_course_progress(PRINCIPAL, limit=10, offset=0)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(self.status_row().last_sync_status, STATUS_FAILED)


class ModeResolutionTests(ProgressServiceTestCase):
    def setUp(self):
        super().setUp()
        for userid in range(100, 110):
            self.add_record(userid, last_updated=support.NOW - 3 * 3600)
        for userid in range(110, 115):
            self.add_record(userid, last_updated=support.NOW - 3600 + userid)
        self.add_record(115, last_updated=support.NOW - 60, is_deleted=1)

    def test_incremental_returns_only_rows_newer_than_last_sync(self):
        self.record_status_at(support.NOW - 2 * 3600)
        rows = self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual([r['userid'] for r in rows], [114, 113, 112, 111, 110])
        self.assertEqual(self.status_row().last_sync_mode, 'incremental')

    def test_failed_last_attempt_forces_full(self):
        self.record_status_at(support.NOW - 300, status=STATUS_FAILED)
        rows = self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual([r['userid'] for r in rows], list(range(100, 115)))
        self.assertEqual(self.status_row().last_sync_mode, 'full')

    def test_expired_window_forces_full(self):
        company_settings.set_settings(self.db, 10, {'sync_window_hours': 1}, support.NOW)
        self.record_status_at(support.NOW - 2 * 3600)
        self.assertEqual(len(self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)), 15)

    def test_incremental_without_changes_does_not_fall_back(self):
        self.record_status_at(support.NOW - 30)
        self.assertEqual(self.service.get_course_progress(PRINCIPAL, limit=100, offset=0), [])
        self.assertEqual(self.status_row().last_sync_records, 0)

    def test_disabled_field_is_absent_from_every_row(self):
        company_settings.set_settings(self.db, 10, {'field_email': 0}, support.NOW)
        rows = self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual(len(rows), 15)
        for row in rows:
            self.assertNotIn('email', row)
            self.assertIn('userid', row)

    def test_course_filter(self):
        self.add_record(100, courseid=3)
        company_settings.set_settings(self.db, 10, {'course_3': 1}, support.NOW)
        rows = self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual([(r['userid'], r['courseid']) for r in rows], [(100, 3)])


class CacheTests(ProgressServiceTestCase):
    def setUp(self):
        super().setUp()
        for userid in range(100, 103):
            self.add_record(userid, last_updated=support.NOW - 60)
        self.record_status_at(support.NOW - 3600)

    def test_incremental_result_is_cached(self):
        first = self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual(len(first), 3)

        self.clock.advance(10)
        self.add_record(200, last_updated=self.clock.value)
        second = self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual(second, first)
        entry = self.db.query(CacheEntry).one()
        self.assertEqual(entry.cache_key, 'api_response_10_100_0_incremental')
        self.assertEqual(entry.hit_count, 1)
        self.assertEqual(entry.expires_at, support.NOW + 30 * 60)

    def test_cache_disabled(self):
        company_settings.set_settings(self.db, 10, {'cache_enabled': 0}, support.NOW)
        self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual(self.db.query(CacheEntry).count(), 0)

    def test_full_mode_is_not_cached(self):
        company_settings.set_settings(self.db, 10, {'sync_mode': 'full'}, support.NOW)
        self.service.get_course_progress(PRINCIPAL, limit=100, offset=0)
        self.assertEqual(self.db.query(CacheEntry).count(), 0)


class ErrorPathTests(ProgressServiceTestCase):
    def setUp(self):
        super().setUp()
        support.seed_course(self.db, 2, 10)
        support.seed_user(self.db, 100, 10)
        support.enrol_user(self.db, 100, 2)
        self.add_record(100, last_updated=support.NOW - 60)

    def test_paging_errors_propagate_before_any_work(self):
        with self.assertRaises(LimitTooLargeError) as ctx:
            self.service.get_course_progress(PRINCIPAL, limit=self.settings.max_records + 1, offset=0)
        self.assertEqual(ctx.exception.error_code, 'LIMIT_TOO_LARGE')
        with self.assertRaises(InvalidParameterError):
            self.service.get_course_progress(PRINCIPAL, limit=0, offset=0)
        with self.assertRaises(InvalidParameterError):
            self.service.get_course_progress(PRINCIPAL, limit=10, offset=-1)
        self.assertIsNone(self.status_row())

    def test_query_error_falls_back_and_keeps_failure(self):
        with patch.object(ProgressService, '_query_reporting', side_effect=RuntimeError('deadlock')):
            rows = self.service.get_course_progress(PRINCIPAL, limit=10, offset=0)
        self.assertEqual([r['userid'] for r in rows], [100])
        status = self.status_row()
        self.assertEqual(status.last_sync_status, STATUS_FAILED)
        self.assertIn('deadlock', status.last_sync_error)

        self.clock.advance(60)
        self.service.get_course_progress(PRINCIPAL, limit=10, offset=0)
        status = self.status_row()
        self.assertEqual(status.last_sync_mode, 'full')
        self.assertEqual(status.last_sync_status, 'success')
        self.assertEqual(status.total_syncs, 2)


if __name__ == '__main__':
    unittest.main()
