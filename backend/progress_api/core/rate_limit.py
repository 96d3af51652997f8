from __future__ import annotations

from datetime import datetime, timedelta

from progress_api.core.env import ReportingEnv
from progress_api.core.errors import RateLimitExceededError
from progress_api.repositories.request_log import count_requests_since


def local_day_start(now: int) -> int:
    """Unix seconds of the most recent local midnight."""
    current = datetime.fromtimestamp(int(now))
    return int(current.replace(hour=0, minute=0, second=0, microsecond=0).timestamp())


def next_local_day_start(now: int) -> int:
    current = datetime.fromtimestamp(int(now)).replace(hour=0, minute=0, second=0, microsecond=0)
    return int((current + timedelta(days=1)).timestamp())


class DailyRateLimiter:
    """Per-user daily quota counted from the durable request log.

    The window is the calendar day in server local time; it resets at
    midnight rather than sliding.
    """

    def __init__(self, env: ReportingEnv, limit: int | None = None) -> None:
        self.env = env
        self.limit = max(1, int(limit if limit is not None else env.settings.rate_limit))

    def used_today(self, userid: int) -> int:
        return count_requests_since(self.env.db, userid, local_day_start(self.env.now()))

    def check(self, userid: int) -> int:
        """Raise when the quota is spent; otherwise return the calls left before this one."""
        now = self.env.now()
        used = count_requests_since(self.env.db, userid, local_day_start(now))
        if used >= self.limit:
            raise RateLimitExceededError(
                f'Daily API request limit ({self.limit}) exceeded. Try again tomorrow.',
                details={
                    'limit': self.limit,
                    'used': used,
                    'retry_after': next_local_day_start(now) - now,
                },
            )
        return self.limit - used
