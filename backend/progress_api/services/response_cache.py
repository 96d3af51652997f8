from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import func

from progress_api.core.env import ReportingEnv
from progress_api.db.upsert import upsert_rows
from progress_api.models.reporting import CacheEntry

logger = logging.getLogger(__name__)


def build_cache_key(companyid: int, limit: int, offset: int, mode: str) -> str:
    return f'api_response_{int(companyid)}_{int(limit)}_{int(offset)}_{mode}'


class ResponseCache:
    """Serialized API responses keyed by (cache_key, companyid).

    Expired entries are removed lazily on read and in bulk by ``sweep``.
    Hit count and last access are observability only; they never decide
    what gets evicted.
    """

    def __init__(self, env: ReportingEnv) -> None:
        self.env = env

    def get(self, cache_key: str, companyid: int) -> Any | None:
        db = self.env.db
        now = self.env.now()
        row = (
            db.query(CacheEntry)
            .filter(CacheEntry.cache_key == cache_key, CacheEntry.companyid == companyid)
            .first()
        )
        if row is None:
            return None
        if int(row.expires_at) < now:
            db.delete(row)
            db.commit()
            return None
        row.hit_count = int(row.hit_count or 0) + 1
        row.last_accessed = now
        db.commit()
        return json.loads(row.cache_data)

    def set(self, cache_key: str, companyid: int, payload: Any, ttl_seconds: int) -> None:
        now = self.env.now()
        upsert_rows(
            self.env.db,
            CacheEntry,
            [
                {
                    'cache_key': cache_key,
                    'companyid': int(companyid),
                    'cache_data': json.dumps(payload, ensure_ascii=False),
                    'cache_timestamp': now,
                    'expires_at': now + max(0, int(ttl_seconds)),
                    'hit_count': 0,
                    'last_accessed': now,
                }
            ],
            index_elements=['cache_key', 'companyid'],
            update_columns=['cache_data', 'cache_timestamp', 'expires_at', 'last_accessed'],
        )
        self.env.db.commit()

    def sweep(self, max_age_hours: int = 24) -> int:
        """Delete entries that expired more than ``max_age_hours`` ago."""
        cutoff = self.env.now() - max(0, int(max_age_hours)) * 3600
        deleted = (
            self.env.db.query(CacheEntry)
            .filter(CacheEntry.expires_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.env.db.commit()
        if deleted:
            logger.info('[cache] swept %s expired entries (max_age_hours=%s)', deleted, max_age_hours)
        return int(deleted or 0)

    def invalidate_company(self, companyid: int) -> int:
        deleted = (
            self.env.db.query(CacheEntry)
            .filter(CacheEntry.companyid == companyid)
            .delete(synchronize_session=False)
        )
        self.env.db.commit()
        return int(deleted or 0)

    def stats(self, companyid: int | None = None) -> dict:
        now = self.env.now()
        query = self.env.db.query(CacheEntry)
        if companyid:
            query = query.filter(CacheEntry.companyid == companyid)
        entries, hits = query.with_entities(func.count(CacheEntry.id), func.sum(CacheEntry.hit_count)).one()
        expired = query.filter(CacheEntry.expires_at < now).count()
        return {'entries': int(entries or 0), 'expired': int(expired), 'total_hits': int(hits or 0)}
