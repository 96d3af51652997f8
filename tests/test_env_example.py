import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


class EnvExampleTests(unittest.TestCase):
    def test_env_example_exists_and_has_database_keys(self):
        env = (ROOT / '.env.example').read_text(encoding='utf-8')
        for key in ['DATABASE_URL', 'JWT_SECRET_KEY', 'CORS_ORIGINS', 'APP_ENV']:
            self.assertIn(key + '=', env)

    def test_env_example_lists_api_and_sync_knobs(self):
        env = (ROOT / '.env.example').read_text(encoding='utf-8')
        for key in [
            'RATE_LIMIT', 'MAX_RECORDS', 'ALLOW_GET_METHOD', 'LOG_RETENTION_DAYS',
            'AUTO_SYNC_HOURS', 'AUTO_SYNC_INTERVAL_MINUTES', 'MAX_SYNC_TIME',
            'SYNC_LOCK_STALE_SECONDS', 'CACHE_SWEEP_MAX_AGE_HOURS',
        ]:
            self.assertIn(key + '=', env)


if __name__ == '__main__':
    unittest.main()
