"""Background worker that fires due offer timers."""
from __future__ import annotations

import threading
import time
from typing import Union

from storefront.config import JOB_STORE_SETTINGS, TIMER_SETTINGS
from storefront.jobs.job_store import SqlJobRecordStore
from storefront.jobs.offer_job import OfferPhaseJob
from storefront.jobs.redis_job_store import RedisJobRecordStore
from storefront.jobs.scheduler import OfferScheduler
from storefront.utils import get_logger

logger = get_logger(__name__)


class SchedulerWorker:
    """Single executor thread: fires are processed one at a time, in deadline order."""

    def __init__(self, scheduler: OfferScheduler, *, poll_timeout: float | None = None):
        self.scheduler = scheduler
        self.poll_timeout = float(poll_timeout if poll_timeout is not None else TIMER_SETTINGS["poll_timeout_seconds"])
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:  # pragma: no cover
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="offer-scheduler-worker", daemon=True)
        self._thread.start()
        logger.info("Offer scheduler worker started")

    def stop(self, join_timeout: float | None = None) -> None:
        self._stop_event.set()
        self.scheduler.queue.shutdown()
        if join_timeout is not None and self._thread is not None:
            self._thread.join(timeout=join_timeout)
        logger.info("Offer scheduler worker stop requested")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self.scheduler.queue.dequeue(timeout=self.poll_timeout)
                if job is None:
                    continue
                if not isinstance(job, OfferPhaseJob):
                    logger.warning("Skipping unknown timer payload", job_type=type(job).__name__)
                    continue
                # execute() captures its own errors into a FireResult
                self.scheduler.execute(job)
            except Exception as e:  # pragma: no cover
                logger.error("Scheduler worker loop error", error=str(e), exc_info=True)
                time.sleep(1)


def create_job_store(session_factory=None) -> Union[SqlJobRecordStore, RedisJobRecordStore]:
    """Create the job record store selected by JOB_STORE_SETTINGS."""
    sql_store = SqlJobRecordStore(session_factory)
    if JOB_STORE_SETTINGS.get("use_redis", False):
        store = RedisJobRecordStore(fallback=sql_store)
        if store.health_check():
            logger.info("Using Redis-backed job store")
            return store
        logger.warning("Redis unreachable at startup, using SQL job store")

    logger.info("Using SQL job store")
    return sql_store


__all__ = ["SchedulerWorker", "create_job_store"]
