import unittest

import support

from progress_api.models.reporting import CacheEntry
from progress_api.services.response_cache import ResponseCache, build_cache_key


class ResponseCacheTests(support.ReportingTestCase):
    def setUp(self):
        super().setUp()
        self.cache = ResponseCache(self.env)

    def test_key_encodes_company_window_and_mode(self):
        self.assertEqual(build_cache_key(10, 100, 200, 'incremental'), 'api_response_10_100_200_incremental')

    def test_hit_bumps_observability_counters(self):
        key = build_cache_key(10, 100, 0, 'incremental')
        self.cache.set(key, 10, [{'userid': 1}], ttl_seconds=600)
        self.clock.advance(60)
        self.assertEqual(self.cache.get(key, 10), [{'userid': 1}])
        self.assertEqual(self.cache.get(key, 10), [{'userid': 1}])
        row = self.db.query(CacheEntry).one()
        self.assertEqual(row.hit_count, 2)
        self.assertEqual(row.last_accessed, support.NOW + 60)

    def test_entries_are_scoped_by_company(self):
        key = build_cache_key(10, 100, 0, 'incremental')
        self.cache.set(key, 10, [1], ttl_seconds=600)
        self.assertIsNone(self.cache.get(key, 11))

    def test_expired_entry_is_deleted_on_read(self):
        key = build_cache_key(10, 100, 0, 'incremental')
        self.cache.set(key, 10, [1], ttl_seconds=60)
        self.clock.advance(61)
        self.assertIsNone(self.cache.get(key, 10))
        self.assertEqual(self.db.query(CacheEntry).count(), 0)

    def test_set_overwrites_same_key(self):
        key = build_cache_key(10, 100, 0, 'incremental')
        self.cache.set(key, 10, [1], ttl_seconds=60)
        self.cache.set(key, 10, [2], ttl_seconds=60)
        self.assertEqual(self.db.query(CacheEntry).count(), 1)
        self.assertEqual(self.cache.get(key, 10), [2])

    def test_sweep_only_removes_entries_expired_long_enough(self):
        self.cache.set('old', 10, [1], ttl_seconds=0)
        self.cache.set('fresh', 10, [1], ttl_seconds=3600)
        self.clock.advance(2 * 3600)
        self.assertEqual(self.cache.sweep(max_age_hours=24), 0)
        self.assertEqual(self.cache.sweep(max_age_hours=1), 1)
        self.assertEqual(self.cache.sweep(max_age_hours=0), 1)
        self.assertEqual(self.db.query(CacheEntry).count(), 0)

    def test_invalidate_company(self):
        self.cache.set('a', 10, [1], ttl_seconds=600)
        self.cache.set('b', 10, [1], ttl_seconds=600)
        self.cache.set('a', 11, [1], ttl_seconds=600)
        self.assertEqual(self.cache.invalidate_company(10), 2)
        self.assertEqual(self.cache.stats()['entries'], 1)


if __name__ == '__main__':
    unittest.main()
