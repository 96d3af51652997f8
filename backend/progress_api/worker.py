import logging
import os
import signal
import time

from progress_api.core.config import settings
from progress_api.core.env import ReportingEnv
from progress_api.core.errors import SyncInProgressError
from progress_api.core.logging_config import configure_logging
from progress_api.db.session import SessionLocal
from progress_api.services.scheduled_sync import run_scheduled_sync


logger = logging.getLogger(__name__)


def run_once(actor: str) -> dict | None:
    db = SessionLocal()
    try:
        return run_scheduled_sync(ReportingEnv(db=db, settings=settings), actor=actor)
    except SyncInProgressError:
        logger.warning("sync worker: another pass holds the lock, skipping this tick")
        return None
    finally:
        db.close()


def serve(worker_name: str, interval: int, stop: dict, poll_sleep: float = 1.0) -> None:
    # ticks are spaced start to start
    next_run = time.monotonic()
    while not stop["flag"]:
        now = time.monotonic()
        if now >= next_run:
            next_run = max(next_run + interval, now)
            try:
                result = run_once(worker_name)
                if result is not None:
                    logger.info("sync worker tick done: %s", result["sync"])
            except Exception:
                logger.exception("sync worker loop error")
        time.sleep(poll_sleep)


def main() -> None:
    configure_logging()
    worker_name = os.getenv("SYNC_WORKER_NAME", "progress-sync-worker")
    interval = max(60, int(settings.auto_sync_interval_minutes) * 60)
    poll_sleep = 1.0
    stop = {"flag": False}

    def _shutdown_handler(signum, _frame):  # type: ignore[no-untyped-def]
        logger.info("sync worker received signal %s, stopping...", signum)
        stop["flag"] = True

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)

    logger.info("sync worker started: %s (every %ss)", worker_name, interval)
    serve(worker_name, interval, stop, poll_sleep)
    logger.info("sync worker stopped: %s", worker_name)


if __name__ == "__main__":
    main()
