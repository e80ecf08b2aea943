"""
Job Re-entrancy Guard
=====================

Prevents a scheduled job from running twice at the same time inside one
process. A second trigger while the job is in flight is a no-op: it is logged
and skipped, never queued.

Usage:
    ```python
    guard = JobGuard('queue_time_sampling')

    with guard.run_exclusive() as acquired:
        if acquired:
            sampler.sample_all()
    ```

The lock is acquired non-blocking so the check-and-set is atomic across
threads. Horizontal scaling would need a distributed lease instead.
"""

import threading
from contextlib import contextmanager
from typing import Generator

from utils.logger import log_job_skipped


class JobGuard:
    """Atomically checked running flag for one job type."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def run_exclusive(self) -> Generator[bool, None, None]:
        """
        Yield True if this caller owns the job run, False if it was skipped.

        The guard is released when the block exits, including on error.
        """
        acquired = self._lock.acquire(blocking=False)
        if not acquired:
            log_job_skipped(self.job_name)
            yield False
            return

        try:
            yield True
        finally:
            self._lock.release()
