from __future__ import annotations

import logging

from progress_api.core.config import settings
from progress_api.db.base import Base
from progress_api.db.session import SessionLocal, engine
from progress_api.models.reporting import SyncLock
import progress_api.models  # noqa: F401

logger = logging.getLogger(__name__)

PROBE_LOCK_NAME = '__bootstrap_probe__'


def bootstrap_database_with_write_probe() -> None:
    """
    Ensure schema exists and run a short insert/delete probe on the lock table
    to validate the write path. The probe leaves nothing persisted.
    """
    Base.metadata.create_all(bind=engine)

    if not settings.db_write_probe_on_start:
        logger.info('DB bootstrap completed (schema ensured, write probe disabled)')
        return

    db = SessionLocal()
    try:
        probe = SyncLock(name=PROBE_LOCK_NAME, holder='bootstrap', acquired_at=0)
        db.add(probe)
        db.flush()
        db.delete(probe)
        db.commit()
        logger.info('DB bootstrap completed (schema ensured + write probe insert/delete)')
    except Exception:
        db.rollback()
        logger.exception('DB bootstrap failed')
        raise
    finally:
        db.close()
