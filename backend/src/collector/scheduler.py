"""
Theme Park Crowd Tracker - Ingestion Scheduler
Long-running process that drives the catalog sync and the queue-time sampler.

Startup:
1. Wait for the database (bounded retries)
2. Catalog sync, then one sampling pass

Then:
- Catalog sync once a day at CATALOG_SYNC_HOUR_UTC, then a purge of expired
  result-cache entries
- Sampling every COLLECTION_INTERVAL_MINUTES

Each job type has its own JobGuard: a trigger that fires while the previous
run is still going is logged and dropped.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from collector.catalog_synchronizer import CatalogSyncError, CatalogSynchronizer
from collector.queue_time_sampler import QueueTimeSampler
from database.connection import session_scope
from database.repositories.queue_sample_repository import QueueSampleRepository
from models.statistics import CatalogSyncResult, SamplingResult
from utils.cache import ResultCache, get_result_cache
from utils.config import CATALOG_SYNC_HOUR_UTC, COLLECTION_INTERVAL_MINUTES
from utils.job_guard import JobGuard
from utils.logger import logger, log_collection_error
from utils.timezone import utc_now

DB_WAIT_ATTEMPTS = 10
DB_WAIT_DELAY_SECONDS = 2.0


def next_daily_run(now: datetime, hour_utc: int) -> datetime:
    """
    Next occurrence of hour_utc:00 strictly after now.

    Example:
        >>> next_daily_run(datetime(2026, 10, 18, 0, 0), 0)
        datetime.datetime(2026, 10, 19, 0, 0)
    """
    candidate = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class IngestionScheduler:
    """
    In-process scheduler for the two ingestion jobs.

    Jobs run on worker threads so a slow sampling pass never delays the
    catalog sync (and the other way round).
    """

    def __init__(self, synchronizer: Optional[CatalogSynchronizer] = None,
                 sampler: Optional[QueueTimeSampler] = None,
                 cache: Optional[ResultCache] = None,
                 session_factory: Optional[Callable[[], Session]] = None,
                 interval_minutes: int = COLLECTION_INTERVAL_MINUTES,
                 catalog_sync_hour_utc: int = CATALOG_SYNC_HOUR_UTC,
                 db_wait_attempts: int = DB_WAIT_ATTEMPTS,
                 db_wait_delay_seconds: float = DB_WAIT_DELAY_SECONDS):
        if session_factory is None:
            from models.base import create_session
            session_factory = create_session
        self.session_factory = session_factory
        self.cache = cache if cache is not None else get_result_cache()
        self.synchronizer = synchronizer or CatalogSynchronizer(session_factory=session_factory)
        self.sampler = sampler or QueueTimeSampler(session_factory=session_factory, cache=self.cache)
        self.interval = timedelta(minutes=interval_minutes)
        self.catalog_sync_hour_utc = catalog_sync_hour_utc
        self.db_wait_attempts = db_wait_attempts
        self.db_wait_delay_seconds = db_wait_delay_seconds

        self.catalog_guard = JobGuard('catalog_sync')
        self.sampling_guard = JobGuard('queue_time_sampling')
        self._stop_event = threading.Event()

    # --- jobs ---

    def run_catalog_sync(self) -> Optional[CatalogSyncResult]:
        """
        Run the catalog sync unless it is already running.

        Returns:
            CatalogSyncResult, or None if skipped or failed (already logged)
        """
        with self.catalog_guard.run_exclusive() as acquired:
            if not acquired:
                return None
            try:
                return self.synchronizer.sync()
            except CatalogSyncError:
                # Logged by the synchronizer; retried on the next trigger
                return None
            finally:
                self.purge_expired_cache()

    def purge_expired_cache(self) -> int:
        """
        Drop expired result-cache entries.

        Crowd history keys change every UTC day, so yesterday's entries are
        never read again and lazy expiry would never remove them.

        Returns:
            Number of entries removed (0 on failure, already logged)
        """
        try:
            removed = self.cache.purge_expired()
        except Exception as e:
            logger.warning(f"Result cache purge failed: {e}")
            return 0
        logger.info("Result cache purged", extra={"entries_removed": removed})
        return removed

    def run_sampling(self) -> Optional[SamplingResult]:
        """
        Run one sampling pass unless one is already running.

        Returns:
            SamplingResult, or None if skipped or the park listing failed
        """
        with self.sampling_guard.run_exclusive() as acquired:
            if not acquired:
                return None
            try:
                return self.sampler.sample_all()
            except Exception as e:
                log_collection_error(e)
                return None

    # --- lifecycle ---

    def wait_for_database(self) -> bool:
        """
        Query the sample table until it answers.

        Returns:
            True once a query succeeds, False after all attempts fail
        """
        for attempt in range(1, self.db_wait_attempts + 1):
            try:
                with session_scope(self.session_factory) as session:
                    stats = QueueSampleRepository(session).get_statistics()
                logger.info("Database ready", extra={
                    "attempt": attempt,
                    **stats.to_dict()
                })
                return True
            except Exception as e:
                logger.warning(f"Database not ready (attempt {attempt}/{self.db_wait_attempts}): {e}")
                if attempt < self.db_wait_attempts and self._stop_event.wait(self.db_wait_delay_seconds):
                    return False
        return False

    def bootstrap(self) -> bool:
        """
        Initial catalog sync followed by one sampling pass.

        Returns:
            False if the database never became ready
        """
        if not self.wait_for_database():
            logger.error("Database unavailable, skipping initial ingestion", extra={
                "attempts": self.db_wait_attempts
            })
            return False

        self.run_catalog_sync()
        self.run_sampling()
        return True

    def _trigger(self, job: Callable[[], object], name: str) -> threading.Thread:
        thread = threading.Thread(target=job, name=name, daemon=True)
        thread.start()
        return thread

    def run_forever(self) -> None:
        """Bootstrap, then trigger jobs on schedule until stop() is called."""
        logger.info("=" * 60)
        logger.info("INGESTION SCHEDULER STARTED")
        logger.info(f"Sampling every {self.interval}, catalog sync daily at "
                    f"{self.catalog_sync_hour_utc:02d}:00 UTC")
        logger.info("=" * 60)

        self.bootstrap()

        now = utc_now()
        next_sampling = now + self.interval
        next_catalog_sync = next_daily_run(now, self.catalog_sync_hour_utc)

        while not self._stop_event.is_set():
            now = utc_now()

            if now >= next_catalog_sync:
                self._trigger(self.run_catalog_sync, 'catalog-sync')
                next_catalog_sync = next_daily_run(now, self.catalog_sync_hour_utc)

            if now >= next_sampling:
                self._trigger(self.run_sampling, 'queue-time-sampling')
                # Fixed cadence; missed slots are not replayed
                while next_sampling <= now:
                    next_sampling += self.interval

            wake_at = min(next_sampling, next_catalog_sync)
            self._stop_event.wait(max(0.0, (wake_at - utc_now()).total_seconds()))

        logger.info("Ingestion scheduler stopped")

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()
