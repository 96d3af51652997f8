import unittest

import support

from progress_api.core.errors import InvalidSettingError, UnknownSettingError
from progress_api.models.reporting import CompanySetting
from progress_api.repositories import company_settings
from progress_api.services.field_projection import FIELD_NAMES


class NormalizeSettingTests(unittest.TestCase):
    def test_unknown_keys_are_rejected(self):
        for name in ('colour', 'field_phone', 'course_abc', 'sync_modes'):
            with self.assertRaises(UnknownSettingError):
                company_settings.normalize_setting(name, 1)

    def test_ranges(self):
        self.assertEqual(company_settings.normalize_setting('sync_window_hours', '168'), '168')
        with self.assertRaises(InvalidSettingError):
            company_settings.normalize_setting('sync_window_hours', 0)
        with self.assertRaises(InvalidSettingError):
            company_settings.normalize_setting('cache_ttl_minutes', 4)
        with self.assertRaises(InvalidSettingError):
            company_settings.normalize_setting('first_sync_hours', 48)
        with self.assertRaises(InvalidSettingError):
            company_settings.normalize_setting('sync_mode', 'sometimes')

    def test_flags(self):
        self.assertEqual(company_settings.normalize_setting('field_email', True), '1')
        self.assertEqual(company_settings.normalize_setting('course_12', 'off'), '0')
        with self.assertRaises(InvalidSettingError):
            company_settings.normalize_setting('cache_enabled', 'maybe')


class CompanySettingsStoreTests(support.ReportingTestCase):
    def setUp(self):
        super().setUp()
        support.seed_company(self.db, 10)
        support.seed_course(self.db, 2, 10, fullname='Beta')
        support.seed_course(self.db, 3, 10, fullname='Alpha')
        support.seed_course(self.db, 4, 10, fullname='Hidden', visible=0)
        support.seed_course(self.db, 5, 11, fullname='Other company')

    def test_defaults_without_rows(self):
        config = company_settings.load_company_config(self.db, 10)
        self.assertEqual(config.enabled_fields, FIELD_NAMES)
        self.assertFalse(config.has_course_settings)
        self.assertTrue(config.is_course_enabled(2))
        self.assertEqual((config.sync_mode, config.sync_window_hours), ('auto', 24))
        self.assertTrue(config.cache_enabled)
        self.assertFalse(company_settings.has_settings(self.db, 10))

    def test_set_and_load(self):
        company_settings.set_settings(
            self.db, 10,
            {'field_email': 0, 'course_2': 1, 'course_3': 0, 'sync_window_hours': 6, 'cache_enabled': 0},
            support.NOW,
        )
        config = company_settings.load_company_config(self.db, 10)
        self.assertNotIn('email', config.enabled_fields)
        self.assertEqual(config.enabled_course_ids, [2])
        self.assertFalse(config.is_course_enabled(3))
        self.assertEqual(config.sync_window_hours, 6)
        self.assertFalse(config.cache_enabled)
        self.assertTrue(company_settings.has_course_settings(self.db, 10))
        self.assertEqual(company_settings.get_enabled_courses(self.db, 10), [2])

    def test_invalid_batch_writes_nothing(self):
        with self.assertRaises(UnknownSettingError):
            company_settings.set_settings(self.db, 10, {'field_email': 0, 'bogus': 1}, support.NOW)
        self.assertEqual(company_settings.get_company_settings(self.db, 10), {})

    def test_set_setting_updates_in_place(self):
        company_settings.set_setting(self.db, 10, 'sync_mode', 'full', support.NOW)
        company_settings.set_setting(self.db, 10, 'sync_mode', 'incremental', support.NOW + 5)
        self.assertEqual(company_settings.get_setting(self.db, 10, 'sync_mode'), 'incremental')
        self.assertEqual(self.db.query(CompanySetting).filter(CompanySetting.companyid == 10).count(), 1)
        self.assertEqual(company_settings.get_setting(self.db, 10, 'missing', 'x'), 'x')

    def test_unknown_stored_key_fails_config_load(self):
        self.db.add(CompanySetting(companyid=10, setting_name='legacy_flag', setting_value='1'))
        self.db.commit()
        with self.assertRaises(UnknownSettingError):
            company_settings.load_company_config(self.db, 10)

    def test_company_courses_are_visible_assigned_and_sorted(self):
        courses = company_settings.get_company_courses(self.db, 10)
        self.assertEqual([c.id for c in courses], [3, 2])

    def test_copy_defaults(self):
        written = company_settings.copy_company_settings(self.db, 0, 10, support.NOW)
        self.assertEqual(written, len(FIELD_NAMES) + 2)
        config = company_settings.load_company_config(self.db, 10)
        self.assertEqual(config.enabled_course_ids, [2, 3])
        self.assertEqual(config.enabled_fields, FIELD_NAMES)

    def test_copy_from_company(self):
        company_settings.set_settings(self.db, 10, {'field_email': 0, 'sync_mode': 'full'}, support.NOW)
        written = company_settings.copy_company_settings(self.db, 10, 12, support.NOW)
        self.assertEqual(written, 2)
        self.assertEqual(company_settings.load_company_config(self.db, 12).sync_mode, 'full')
        self.assertEqual(company_settings.companies_with_settings(self.db), [10, 12])


if __name__ == '__main__':
    unittest.main()
