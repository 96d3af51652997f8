import unittest

import support

from progress_api.models.reporting import RequestLog
from progress_api.repositories import company_settings

URL = '/api/v1/progress/course-progress'
TOKEN = 'tok_' + 'x' * 28


class CourseProgressApiTestCase(support.ApiTestCase):
    def setUp(self):
        super().setUp()
        support.seed_company(self.db, 10)
        support.seed_course(self.db, 2, 10, fullname='Safety')
        support.seed_user(self.db, 100, 10, firstname='Ana', lastname='Adams')
        support.enrol_user(self.db, 100, 2)
        support.seed_user(self.db, 500, 10, firstname='Report', lastname='Bot')
        support.issue_token(self.db, 500, raw=TOKEN)
        self.headers = {'Authorization': f'Bearer {TOKEN}'}

    def logged(self, endpoint):
        self.db.expire_all()
        return self.db.query(RequestLog).filter(RequestLog.endpoint == endpoint).count()


class CourseProgressAuthTests(CourseProgressApiTestCase):
    def assertError(self, response, status_code, error_code):
        self.assertEqual(response.status_code, status_code, response.text)
        body = response.json()
        self.assertEqual(body['error_code'], error_code)
        self.assertIn('message', body)
        self.assertIn('trace_id', body)

    def test_missing_token(self):
        self.assertError(self.client.post(URL, json={}), 401, 'MISSING_TOKEN')

    def test_malformed_token(self):
        r = self.client.post(URL, json={}, headers={'Authorization': 'Bearer short'})
        self.assertError(r, 401, 'INVALID_TOKEN_FORMAT')

    def test_unknown_token_is_logged_as_security_event(self):
        r = self.client.post(URL, json={}, headers={'Authorization': 'Bearer ' + 'z' * 32})
        self.assertError(r, 401, 'INVALID_TOKEN')
        self.assertEqual(self.logged('security_invalid_token'), 1)

    def test_token_for_other_service(self):
        support.issue_token(self.db, 500, raw='y' * 32, service='mobile_app')
        r = self.client.post(URL, json={}, headers={'Authorization': 'Bearer ' + 'y' * 32})
        self.assertError(r, 401, 'INVALID_TOKEN')

    def test_expired_token(self):
        support.issue_token(self.db, 500, raw='e' * 32, validuntil=support.NOW - 1)
        r = self.client.post(URL, json={}, headers={'Authorization': 'Bearer ' + 'e' * 32})
        self.assertError(r, 401, 'EXPIRED_TOKEN')

    def test_suspended_user(self):
        support.seed_user(self.db, 501, 10, suspended=1)
        support.issue_token(self.db, 501, raw='s' * 32)
        r = self.client.post(URL, json={}, headers={'Authorization': 'Bearer ' + 's' * 32})
        self.assertError(r, 403, 'INVALID_USER')

    def test_user_without_company(self):
        support.seed_user(self.db, 502, None)
        support.issue_token(self.db, 502, raw='n' * 32)
        r = self.client.post(URL, json={}, headers={'Authorization': 'Bearer ' + 'n' * 32})
        self.assertError(r, 403, 'NO_COMPANY_ASSOCIATION')

    def test_get_is_rejected_before_authentication(self):
        self.assertError(self.client.get(URL), 405, 'INVALID_REQUEST_METHOD')

    def test_limit_above_maximum(self):
        r = self.client.post(URL, json={'limit': self.settings.max_records + 1}, headers=self.headers)
        self.assertError(r, 400, 'LIMIT_TOO_LARGE')
        self.assertEqual(self.logged('get_course_progress'), 0)

    def test_negative_offset(self):
        r = self.client.post(URL, json={'limit': 10, 'offset': -1}, headers=self.headers)
        self.assertError(r, 400, 'INVALID_PARAMETER')


class CourseProgressReadTests(CourseProgressApiTestCase):
    def test_returns_rows_for_callers_company(self):
        r = self.client.post(URL, json={'limit': 10, 'offset': 0}, headers=self.headers)
        self.assertEqual(r.status_code, 200, r.text)
        rows = r.json()
        self.assertEqual([(row['userid'], row['courseid']) for row in rows], [(100, 2)])
        self.assertEqual(rows[0]['coursename'], 'Safety')
        self.assertEqual(rows[0]['status'], 'not_started')
        self.assertIn('x-trace-id', r.headers)
        self.assertEqual(self.logged('get_course_progress'), 1)

    def test_body_is_optional(self):
        r = self.client.post(URL, headers=self.headers)
        self.assertEqual(r.status_code, 200, r.text)

    def test_disabled_field_is_absent(self):
        company_settings.set_settings(self.db, 10, {'field_email': 0}, support.NOW)
        rows = self.client.post(URL, json={}, headers=self.headers).json()
        self.assertTrue(rows)
        for row in rows:
            self.assertNotIn('email', row)


class CourseProgressRateLimitTests(CourseProgressApiTestCase):
    settings_overrides = {'rate_limit': 2}

    def test_daily_quota(self):
        for _ in range(2):
            self.assertEqual(self.client.post(URL, json={}, headers=self.headers).status_code, 200)
        r = self.client.post(URL, json={}, headers=self.headers)
        self.assertEqual(r.status_code, 429)
        self.assertEqual(r.json()['error_code'], 'RATE_LIMIT_EXCEEDED')
        self.assertIn('retry-after', r.headers)

        self.clock.advance(86400)
        self.assertEqual(self.client.post(URL, json={}, headers=self.headers).status_code, 200)


class CourseProgressGetEnabledTests(CourseProgressApiTestCase):
    settings_overrides = {'allow_get_method': True}

    def test_get_with_query_parameters(self):
        r = self.client.get(URL, params={'limit': 5, 'offset': 0}, headers=self.headers)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(len(r.json()), 1)

    def test_get_still_requires_token(self):
        self.assertEqual(self.client.get(URL).status_code, 401)


if __name__ == '__main__':
    unittest.main()
