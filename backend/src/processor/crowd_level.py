"""
Theme Park Crowd Tracker - Crowd Level Calculator
Compares how busy a park is right now with its own two-year history.

Algorithm:
1. Open rides reporting a wait time form the current set (N rides)
2. The busiest K = max(3, ceil(0.3 * N)) rides are selected
3. current average = mean wait of the selected rides, zero waits excluded
4. baseline = 95th percentile of hourly average waits over 730 days for the
   same rides (open, wait > 0 only); needs at least 10 hourly buckets
5. level = round(current average / baseline * 100), 0 without a baseline
6. confidence = 0.7 * coverage + 0.3 * density, clamped to 10-100

The history scan (steps 4 and 6) is cached per sorted ride set and UTC day.
Every failure path returns CrowdLevelResult.default(); nothing is raised.
"""

import math
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from database.connection import session_scope
from database.repositories.queue_sample_repository import QueueSampleRepository
from database.repositories.ride_repository import RideRepository
from models.crowd_level import CrowdLevelResult, label_for_level
from models.sample import LatestSample
from processor.latest_samples import load_latest_sample_map
from utils.cache import ResultCache, generate_cache_key, get_result_cache
from utils.config import CROWD_HISTORY_TTL_SECONDS, CROWD_LEVEL_MAX_WORKERS, CROWD_LEVEL_TIMEOUT_SECONDS
from utils.logger import logger, log_crowd_level_fallback
from utils.sql_helpers import percentile_cont
from utils.timezone import utc_day_key, utc_now, window_start

HISTORICAL_WINDOW_DAYS = 730
BASELINE_PERCENTILE = 0.95
TOP_RIDE_SHARE = 0.3
MIN_TOP_RIDES = 3
MIN_HOURLY_BUCKETS = 10
EXPECTED_SAMPLES_PER_DAY = 24
MIN_CONFIDENCE = 10
MAX_CONFIDENCE = 100
COVERAGE_WEIGHT = 0.7
DENSITY_WEIGHT = 0.3


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (round() is banker's)."""
    return int(math.floor(value + 0.5))


def select_top_rides(samples: Iterable[LatestSample]) -> List[LatestSample]:
    """
    The K busiest rides, K = max(3, ceil(0.3 * N)).

    Sorting is stable, so ties keep their input order.
    """
    ranked = sorted(samples, key=lambda sample: sample.wait_time, reverse=True)
    k = max(MIN_TOP_RIDES, math.ceil(TOP_RIDE_SHARE * len(ranked)))
    return ranked[:k]


def current_average(samples: Iterable[LatestSample]) -> float:
    """Mean wait of the given rides, ignoring zero waits. 0.0 when none qualify."""
    waits = [sample.wait_time for sample in samples if sample.wait_time > 0]
    if not waits:
        return 0.0
    return sum(waits) / len(waits)


def crowd_level(average: float, baseline: float) -> int:
    """
    Current average as a percentage of the baseline.

    Example:
        >>> crowd_level(45, 30)
        150
    """
    if baseline <= 0:
        return 0
    return round_half_up(average / baseline * 100)


def confidence_score(first_sample: Optional[datetime], last_sample: Optional[datetime],
                     sample_count: int, ride_count: int,
                     window_days: int = HISTORICAL_WINDOW_DAYS) -> int:
    """
    How much history backs a crowd level, 10-100.

    coverage = days between first and last sample as a share of the window;
    density = samples as a share of one sample per ride per hour.
    No history at all gives the floor value.
    """
    if not sample_count or first_sample is None or last_sample is None or ride_count <= 0:
        return MIN_CONFIDENCE

    covered_days = math.ceil((last_sample - first_sample).total_seconds() / 86400)
    coverage = min(100.0, covered_days / window_days * 100)

    expected_samples = window_days * EXPECTED_SAMPLES_PER_DAY * ride_count
    density = min(100.0, sample_count / expected_samples * 100)

    score = round_half_up(coverage * COVERAGE_WEIGHT + density * DENSITY_WEIGHT)
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, score))


@dataclass(frozen=True)
class HistoricalProfile:
    """Cached result of the history scan for one ride set."""
    baseline: float
    bucket_count: int
    first_sample: Optional[datetime]
    last_sample: Optional[datetime]
    sample_count: int

    def to_cache_dict(self) -> Dict[str, Any]:
        return {
            "baseline": self.baseline,
            "bucket_count": self.bucket_count,
            "first_sample": self.first_sample.isoformat() if self.first_sample else None,
            "last_sample": self.last_sample.isoformat() if self.last_sample else None,
            "sample_count": self.sample_count
        }

    @classmethod
    def from_cache_dict(cls, payload: Dict[str, Any]) -> 'HistoricalProfile':
        first_sample = payload.get("first_sample")
        last_sample = payload.get("last_sample")
        return cls(
            baseline=float(payload["baseline"]),
            bucket_count=int(payload["bucket_count"]),
            first_sample=datetime.fromisoformat(first_sample) if first_sample else None,
            last_sample=datetime.fromisoformat(last_sample) if last_sample else None,
            sample_count=int(payload["sample_count"])
        )


class CrowdLevelCalculator:
    """
    Crowd level per park, in three modes:

    - calculate(): single park, latest samples read live
    - calculate_many(): many parks, latest samples pre-loaded in one pass
    - calculate_with_timeout(): either of the above under a deadline

    Safe to call from several threads. Concurrent calls that need the same
    history scan wait for one computation instead of repeating it.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None,
                 cache: Optional[ResultCache] = None,
                 history_ttl_seconds: int = CROWD_HISTORY_TTL_SECONDS,
                 timeout_seconds: float = CROWD_LEVEL_TIMEOUT_SECONDS,
                 max_workers: int = CROWD_LEVEL_MAX_WORKERS):
        if session_factory is None:
            from models.base import create_session
            session_factory = create_session
        self.session_factory = session_factory
        self.cache = cache if cache is not None else get_result_cache()
        self.history_ttl_seconds = history_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix='crowd-level')
        self._key_locks: Dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    def calculate(self, park_id: int,
                  latest_samples: Optional[Dict[int, LatestSample]] = None) -> CrowdLevelResult:
        """
        Crowd level for one park.

        Args:
            park_id: Internal park ID
            latest_samples: Optional ride_id -> LatestSample map for this
                park's rides; read from the store when omitted

        Returns:
            CrowdLevelResult (the default result on any failure)
        """
        try:
            if latest_samples is not None:
                open_samples = self._open_samples(latest_samples)
                if not open_samples:
                    return self._no_open_rides(park_id)
                with session_scope(self.session_factory) as session:
                    return self._compute(session, open_samples)

            with session_scope(self.session_factory) as session:
                ride_ids = RideRepository(session).get_active_ride_ids(park_id)
                latest = QueueSampleRepository(session).get_latest_for_rides(ride_ids)
                open_samples = self._open_samples(latest)
                if not open_samples:
                    return self._no_open_rides(park_id)
                return self._compute(session, open_samples)

        except Exception as e:
            log_crowd_level_fallback(park_id, "calculation_error", e)
            return CrowdLevelResult.default("calculation_error")

    def calculate_many(self, park_ids: Iterable[int]) -> Dict[int, CrowdLevelResult]:
        """
        Crowd levels for several parks with one latest-sample load.

        Latest samples come from the cache projection first and one batched
        query for the rest, instead of one query per park.

        Returns:
            Map of park_id -> CrowdLevelResult
        """
        park_ids = list(park_ids)
        try:
            with session_scope(self.session_factory) as session:
                rides_by_park = RideRepository(session).get_active_ride_ids_by_park(park_ids)
                all_ride_ids = [ride_id for ride_ids in rides_by_park.values() for ride_id in ride_ids]
                latest = load_latest_sample_map(session, all_ride_ids, self.cache)
        except Exception as e:
            log_crowd_level_fallback(None, "latest_sample_load_error", e)
            return {park_id: CrowdLevelResult.default("latest_sample_load_error") for park_id in park_ids}

        results = {}
        for park_id in park_ids:
            park_samples = {
                ride_id: latest[ride_id]
                for ride_id in rides_by_park.get(park_id, [])
                if ride_id in latest
            }
            results[park_id] = self.calculate(park_id, park_samples)
        return results

    def calculate_with_timeout(self, park_id: int, timeout_seconds: Optional[float] = None,
                               latest_samples: Optional[Dict[int, LatestSample]] = None) -> CrowdLevelResult:
        """
        calculate() bounded by a deadline.

        On expiry the default result is returned. The running calculation is
        not interrupted; its result is discarded when it finishes.
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        try:
            future = self._executor.submit(self.calculate, park_id, latest_samples)
        except RuntimeError as e:
            # Executor already shut down
            log_crowd_level_fallback(park_id, "executor_unavailable", e)
            return CrowdLevelResult.default("executor_unavailable")

        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            log_crowd_level_fallback(park_id, "timeout")
            return CrowdLevelResult.default("timeout")

    def shutdown(self, wait: bool = False) -> None:
        """Stop the timeout worker pool."""
        self._executor.shutdown(wait=wait)

    # --- internals ---

    @staticmethod
    def _open_samples(latest_samples: Dict[int, LatestSample]) -> List[LatestSample]:
        return [sample for sample in latest_samples.values() if sample.is_reporting]

    @staticmethod
    def _no_open_rides(park_id: int) -> CrowdLevelResult:
        logger.debug(f"No open rides with wait times for park {park_id}")
        return CrowdLevelResult.default("no_open_rides")

    def _compute(self, session: Session, open_samples: List[LatestSample]) -> CrowdLevelResult:
        top_rides = select_top_rides(open_samples)
        average = current_average(top_rides)

        ride_ids = sorted(sample.ride_id for sample in top_rides)
        profile = self._get_profile(session, ride_ids)

        level = crowd_level(average, profile.baseline)
        return CrowdLevelResult(
            level=level,
            label=label_for_level(level),
            rides_used=len(top_rides),
            total_rides=len(open_samples),
            historical_baseline=round_half_up(profile.baseline),
            current_average=round_half_up(average),
            confidence=confidence_score(
                profile.first_sample, profile.last_sample, profile.sample_count, len(ride_ids)
            ),
            calculated_at=utc_now()
        )

    def history_cache_key(self, ride_ids: List[int], now: Optional[datetime] = None) -> str:
        """Cache key of the history scan: sorted ride set plus UTC day."""
        return generate_cache_key(
            "crowd_history",
            rides=",".join(str(ride_id) for ride_id in sorted(ride_ids)),
            day=utc_day_key(now)
        )

    def _get_profile(self, session: Session, ride_ids: List[int]) -> HistoricalProfile:
        key = self.history_cache_key(ride_ids)

        cached = self._cache_get(key)
        if cached is not None:
            return cached

        lock = self._lock_for(key)
        try:
            with lock:
                # Another thread may have finished the scan while we waited
                cached = self._cache_get(key)
                if cached is not None:
                    return cached

                profile = self._scan_history(session, ride_ids)
                self._cache_set(key, profile)
                return profile
        finally:
            with self._key_locks_guard:
                if self._key_locks.get(key) is lock:
                    del self._key_locks[key]

    def _scan_history(self, session: Session, ride_ids: List[int]) -> HistoricalProfile:
        since = window_start(HISTORICAL_WINDOW_DAYS)
        repo = QueueSampleRepository(session)

        hourly_averages = repo.get_hourly_averages(ride_ids, since)
        if len(hourly_averages) >= MIN_HOURLY_BUCKETS:
            baseline = percentile_cont(hourly_averages, BASELINE_PERCENTILE)
        else:
            baseline = 0.0

        coverage = repo.get_coverage_stats(ride_ids, since)

        logger.debug("Scanned crowd level history", extra={
            "ride_count": len(ride_ids),
            "bucket_count": len(hourly_averages),
            "sample_count": coverage.sample_count,
            "baseline": baseline
        })
        return HistoricalProfile(
            baseline=baseline,
            bucket_count=len(hourly_averages),
            first_sample=coverage.first_sample,
            last_sample=coverage.last_sample,
            sample_count=coverage.sample_count
        )

    def _lock_for(self, key: str) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _cache_get(self, key: str) -> Optional[HistoricalProfile]:
        try:
            payload = self.cache.get(key)
            return HistoricalProfile.from_cache_dict(payload) if payload is not None else None
        except Exception as e:
            # A broken cache degrades to a rescan
            logger.warning(f"Crowd history cache read failed for {key}: {e}")
            return None

    def _cache_set(self, key: str, profile: HistoricalProfile) -> None:
        try:
            self.cache.set(key, profile.to_cache_dict(), self.history_ttl_seconds)
        except Exception as e:
            logger.warning(f"Crowd history cache write failed for {key}: {e}")
