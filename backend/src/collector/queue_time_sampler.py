"""
Theme Park Crowd Tracker - Queue-Time Sampler
Polls every known park for current ride status and appends deduplicated
wait-time samples.

Parks are streamed from the catalog in small batches. Each batch is fetched
concurrently, then stored park by park, each in its own transaction, so one
park's bad response or failed write never touches the others. Batches run
one after another with a short pause to stay within the upstream's limits.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from collector.queue_times_client import QueueTimesClient, get_queue_times_client
from database.connection import session_scope
from database.repositories.park_repository import iter_park_refs
from database.repositories.queue_sample_repository import QueueSampleRepository
from database.repositories.ride_repository import RideRepository, RideSighting
from database.repositories.theme_area_repository import ThemeAreaRepository
from models.park import ParkRef
from models.sample import LatestSample
from models.statistics import ParkSampleOutcome, SamplingResult
from processor.latest_samples import write_latest_sample
from utils.cache import ResultCache, get_result_cache
from utils.config import PARK_PAGE_SIZE, SAMPLER_BATCH_DELAY_SECONDS, SAMPLER_BATCH_SIZE
from utils.logger import logger, log_collection_start, log_collection_complete, log_collection_error
from utils.timezone import parse_to_utc, utc_now

MIN_BATCH_SIZE = 3
MAX_BATCH_SIZE = 20


@dataclass(frozen=True)
class RideReading:
    """One ride entry of a park document."""
    queue_times_id: int
    name: str
    land_queue_times_id: Optional[int]
    is_open: Any
    wait_time: Any
    last_updated: Any


def parse_park_document(document: Dict) -> Tuple[List[Tuple[int, str]], List[RideReading]]:
    """
    Split a per-park document into lands and ride readings.

    Rides nested under "lands" keep their land; rides in the top-level
    "rides" list have none. Entries without an integer id are skipped.

    Returns:
        ([(land id, land name)], [RideReading])
    """
    lands: List[Tuple[int, str]] = []
    readings: List[RideReading] = []

    def collect(rides, land_id):
        for ride in rides or []:
            if not isinstance(ride, dict) or not isinstance(ride.get('id'), int):
                continue
            readings.append(RideReading(
                queue_times_id=ride['id'],
                name=str(ride.get('name') or ''),
                land_queue_times_id=land_id,
                is_open=ride.get('is_open'),
                wait_time=ride.get('wait_time'),
                last_updated=ride.get('last_updated')
            ))

    for land in document.get('lands') or []:
        if not isinstance(land, dict) or not isinstance(land.get('id'), int):
            logger.warning("Skipping land without id", extra={"land": str(land)[:200]})
            continue
        lands.append((land['id'], str(land.get('name') or '')))
        collect(land.get('rides'), land['id'])

    collect(document.get('rides'), None)
    return lands, readings


def normalize_reading(reading: RideReading, now: datetime,
                      park_timezone: Optional[str] = None) -> Optional[Tuple[int, bool, datetime]]:
    """
    Validate the sample part of a ride reading.

    Returns:
        (wait_time clamped to >= 0, is_open, last_updated as naive UTC), or
        None when is_open is not a boolean or wait_time is not a number
    """
    if not isinstance(reading.is_open, bool):
        return None
    wait_time = reading.wait_time
    # bool is an int subclass; True is not a wait time
    if isinstance(wait_time, bool) or not isinstance(wait_time, (int, float)):
        return None

    last_updated = parse_to_utc(reading.last_updated, park_timezone) or now
    return max(0, int(wait_time)), reading.is_open, last_updated


class QueueTimeSampler:
    """
    Appends one sample per ride per upstream refresh for every park.

    Duplicate samples (same ride, source timestamp and wait time) are counted
    as skipped, never as failures.

    New samples are published to the latest-sample projection only when the
    cache is shared across processes (CACHE_BACKEND=database), unless
    publish_latest says otherwise.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None,
                 client: Optional[QueueTimesClient] = None,
                 cache: Optional[ResultCache] = None,
                 publish_latest: Optional[bool] = None,
                 batch_size: int = SAMPLER_BATCH_SIZE,
                 batch_delay_seconds: float = SAMPLER_BATCH_DELAY_SECONDS,
                 page_size: int = PARK_PAGE_SIZE):
        if session_factory is None:
            from models.base import create_session
            session_factory = create_session
        self.session_factory = session_factory
        self.client = client or get_queue_times_client()
        self.cache = cache if cache is not None else get_result_cache()
        # A process-local cache dies with this process; no reader would see it
        self.publish_latest = self.cache.shared if publish_latest is None else publish_latest
        self.batch_size = min(MAX_BATCH_SIZE, max(MIN_BATCH_SIZE, batch_size))
        self.batch_delay_seconds = batch_delay_seconds
        self.page_size = page_size

    def sample_all(self) -> SamplingResult:
        """
        Run one sampling cycle over every park.

        Returns:
            SamplingResult totals; failing parks are counted, not raised
        """
        start_time = time.time()
        result = SamplingResult()

        log_collection_start(batch_size=self.batch_size)

        batch: List[ParkRef] = []
        batches_run = 0
        # One pool per cycle: worker threads and their HTTP sessions outlive a batch
        with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix='queue-times') as executor:
            for park in iter_park_refs(self.session_factory, self.page_size):
                batch.append(park)
                if len(batch) == self.batch_size:
                    self._run_batch(executor, batch, result, pause=batches_run > 0)
                    batches_run += 1
                    batch = []
            if batch:
                self._run_batch(executor, batch, result, pause=batches_run > 0)

        log_collection_complete(
            duration_seconds=time.time() - start_time,
            parks_processed=result.parks_processed,
            parks_failed=result.parks_failed,
            new_samples=result.new_samples,
            skipped_duplicates=result.skipped_duplicates
        )
        return result

    def _run_batch(self, executor: ThreadPoolExecutor, parks: List[ParkRef],
                   result: SamplingResult, pause: bool) -> None:
        if pause and self.batch_delay_seconds > 0:
            time.sleep(self.batch_delay_seconds)

        futures = [(park, executor.submit(self.client.get_park_queue_times, park.queue_times_id))
                   for park in parks]

        # Wait for the whole batch; store in submission order
        for park, future in futures:
            try:
                document = future.result()
            except Exception as e:
                result.add(self._failed(park, e))
                continue
            result.add(self.sample_park_document(park, document))

    def sample_park(self, park: ParkRef) -> ParkSampleOutcome:
        """Fetch and store one park outside the batch loop (manual runs, tests)."""
        try:
            document = self.client.get_park_queue_times(park.queue_times_id)
        except Exception as e:
            return self._failed(park, e)
        return self.sample_park_document(park, document)

    def sample_park_document(self, park: ParkRef, document: Dict) -> ParkSampleOutcome:
        """
        Store one park's ride status in its own transaction.

        Catalog rows for lands and rides are upserted first, so rides added
        since the last catalog sync are picked up.
        """
        recorded_at = utc_now()
        new_latest: List[LatestSample] = []

        try:
            lands, readings = parse_park_document(document)

            with session_scope(self.session_factory) as session:
                area_ids = ThemeAreaRepository(session).upsert_for_park(park.park_id, lands)

                sightings = {
                    reading.queue_times_id: RideSighting(
                        queue_times_id=reading.queue_times_id,
                        name=reading.name,
                        theme_area_id=area_ids.get(reading.land_queue_times_id)
                    )
                    for reading in readings
                }
                ride_repo = RideRepository(session)
                ride_ids = ride_repo.upsert_for_park(park.park_id, sightings.values())

                # An empty document says nothing about which rides still exist
                deactivated = ride_repo.deactivate_missing(park.park_id, set(ride_ids)) if ride_ids else 0

                sample_repo = QueueSampleRepository(session)
                new_samples = 0
                skipped = 0
                for reading in readings:
                    normalized = normalize_reading(reading, recorded_at, park.timezone)
                    if normalized is None:
                        continue
                    wait_time, is_open, last_updated = normalized
                    ride_id = ride_ids[reading.queue_times_id]

                    if sample_repo.insert_if_absent(ride_id, wait_time, is_open, last_updated, recorded_at):
                        new_samples += 1
                        new_latest.append(LatestSample(
                            ride_id=ride_id,
                            wait_time=wait_time,
                            is_open=is_open,
                            last_updated=last_updated,
                            recorded_at=recorded_at
                        ))
                    else:
                        skipped += 1

        except Exception as e:
            return self._failed(park, e)

        if self.publish_latest:
            self._publish_latest(park, new_latest)

        logger.debug(f"Sampled park {park.name}", extra={
            "park_id": park.park_id,
            "new_samples": new_samples,
            "skipped_duplicates": skipped,
            "rides_deactivated": deactivated
        })
        return ParkSampleOutcome(
            park_id=park.park_id,
            success=True,
            new_samples=new_samples,
            skipped_duplicates=skipped,
            rides_seen=len(ride_ids),
            rides_deactivated=deactivated
        )

    def _publish_latest(self, park: ParkRef, samples: List[LatestSample]) -> None:
        # Samples are already committed; a cache outage only costs read-path speed
        try:
            for sample in samples:
                write_latest_sample(self.cache, sample)
        except Exception as e:
            logger.warning(f"Failed to refresh latest-sample cache for park {park.park_id}: {e}")

    @staticmethod
    def _failed(park: ParkRef, error: Exception) -> ParkSampleOutcome:
        log_collection_error(error, park_id=park.park_id)
        return ParkSampleOutcome(park_id=park.park_id, success=False, error=str(error))
