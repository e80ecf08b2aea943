"""
Theme Park Crowd Tracker - Latest Sample Projection
Keeps "current wait time per ride" in the result cache.

The sampler writes one entry per ride each time it stores a new sample; read
paths load the projection for many rides at once and fall back to a single
batched query for rides missing from the cache.
"""

from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from database.repositories.queue_sample_repository import QueueSampleRepository
from models.sample import LatestSample
from utils.cache import ResultCache, latest_sample_cache_key
from utils.config import LATEST_SAMPLE_TTL_SECONDS
from utils.logger import logger


def write_latest_sample(cache: ResultCache, sample: LatestSample,
                        ttl_seconds: int = LATEST_SAMPLE_TTL_SECONDS) -> None:
    """Refresh the cached projection for one ride."""
    cache.set(latest_sample_cache_key(sample.ride_id), sample.to_cache_dict(), ttl_seconds)


def _read_cached(cache: ResultCache, ride_id: int) -> Optional[dict]:
    try:
        return cache.get(latest_sample_cache_key(ride_id))
    except Exception as e:
        # Cache outage: the store answers instead
        logger.warning(f"Latest-sample cache read failed for ride {ride_id}: {e}")
        return None


def load_latest_sample_map(session: Session, ride_ids: Iterable[int],
                           cache: Optional[ResultCache] = None) -> Dict[int, LatestSample]:
    """
    Latest sample per ride, cache first, store for the misses.

    Args:
        session: Session used for the fallback query
        ride_ids: Internal ride IDs
        cache: Projection cache (skipped when None)

    Returns:
        Map of ride_id -> LatestSample; rides with no samples are absent
    """
    ride_ids = list(dict.fromkeys(ride_ids))
    result: Dict[int, LatestSample] = {}
    misses = []

    for ride_id in ride_ids:
        payload = _read_cached(cache, ride_id) if cache is not None else None
        if payload is None:
            misses.append(ride_id)
            continue
        try:
            result[ride_id] = LatestSample.from_cache_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed latest-sample cache entry for ride {ride_id}: {e}")
            misses.append(ride_id)

    if misses:
        result.update(QueueSampleRepository(session).get_latest_for_rides(misses))

    logger.debug("Loaded latest samples", extra={
        "rides_requested": len(ride_ids),
        "cache_hits": len(ride_ids) - len(misses),
        "store_lookups": len(misses)
    })
    return result
