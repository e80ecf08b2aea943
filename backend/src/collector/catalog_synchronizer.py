"""
Theme Park Crowd Tracker - Catalog Synchronizer
Reconciles the Queue-Times.com park catalog (groups -> parks) into the database.

One upstream request returns every park group with its parks. Rows are diffed
against what is stored and only new or changed rows are written, in batched
upserts, so re-running on an unchanged catalog writes nothing.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from sqlalchemy.orm import Session
from tenacity import RetryError

from collector.queue_times_client import QueueTimesClient, get_queue_times_client
from database.connection import session_scope
from database.repositories.park_group_repository import ParkGroupRepository
from database.repositories.park_repository import PARK_SYNC_COLUMNS, ParkRepository
from models.statistics import CatalogSyncResult
from utils.config import CATALOG_UPSERT_CHUNK_SIZE
from utils.logger import (
    logger, log_catalog_sync_start, log_catalog_sync_complete, log_catalog_sync_error
)


class CatalogSyncError(Exception):
    """Raised when the upstream catalog cannot be fetched or read."""
    pass


def _parse_coordinate(value: Any) -> Optional[float]:
    # The feed sends coordinates as strings
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_catalog(groups: List[Dict]) -> Tuple[Dict[int, str], Dict[int, Dict[str, Any]]]:
    """
    Flatten the upstream catalog document.

    Args:
        groups: Upstream list of groups with nested "parks"

    Returns:
        (group names keyed by external group ID,
         park rows keyed by external park ID, each carrying group_queue_times_id)

    Entries without an integer id are skipped. A park listed twice keeps its
    last occurrence.
    """
    group_names: Dict[int, str] = {}
    parks: Dict[int, Dict[str, Any]] = {}

    for group in groups:
        group_id = group.get('id') if isinstance(group, dict) else None
        if not isinstance(group_id, int):
            logger.warning("Skipping park group without id", extra={"group": str(group)[:200]})
            continue
        group_names[group_id] = str(group.get('name') or '')

        for park in group.get('parks') or []:
            park_id = park.get('id') if isinstance(park, dict) else None
            if not isinstance(park_id, int):
                logger.warning("Skipping park without id", extra={"group_id": group_id})
                continue
            parks[park_id] = {
                'queue_times_id': park_id,
                'name': str(park.get('name') or ''),
                'country': park.get('country'),
                'continent': park.get('continent'),
                'latitude': _parse_coordinate(park.get('latitude')),
                'longitude': _parse_coordinate(park.get('longitude')),
                'timezone': park.get('timezone'),
                'group_queue_times_id': group_id,
            }

    return group_names, parks


class CatalogSynchronizer:
    """
    Pulls the park hierarchy and upserts it.

    Failure of the upstream fetch aborts the run with CatalogSyncError; the
    scheduler retries on its next trigger.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None,
                 client: Optional[QueueTimesClient] = None,
                 chunk_size: int = CATALOG_UPSERT_CHUNK_SIZE):
        if session_factory is None:
            from models.base import create_session
            session_factory = create_session
        self.session_factory = session_factory
        self.client = client or get_queue_times_client()
        self.chunk_size = chunk_size

    def _fetch_catalog(self) -> List[Dict]:
        try:
            return self.client.get_parks()
        except (requests.RequestException, RetryError, ValueError) as e:
            log_catalog_sync_error(e)
            raise CatalogSyncError(f"Failed to fetch park catalog: {e}") from e

    def sync(self) -> CatalogSyncResult:
        """
        Run one catalog sync.

        Returns:
            CatalogSyncResult with rows written and rows seen

        Raises:
            CatalogSyncError: If the upstream catalog is unavailable or malformed
        """
        start_time = time.time()
        log_catalog_sync_start(self.client.parks_url)

        groups = self._fetch_catalog()
        group_names, parks = parse_catalog(groups)

        result = CatalogSyncResult(groups_seen=len(group_names), parks_seen=len(parks))

        with session_scope(self.session_factory) as session:
            result.groups_written = self._sync_groups(session, group_names)
            result.parks_written = self._sync_parks(session, parks)

        log_catalog_sync_complete(
            duration_seconds=time.time() - start_time,
            groups_seen=result.groups_seen,
            parks_seen=result.parks_seen,
            groups_written=result.groups_written,
            parks_written=result.parks_written
        )
        return result

    def _sync_groups(self, session: Session, group_names: Dict[int, str]) -> int:
        repo = ParkGroupRepository(session)
        stored = repo.get_names_by_queue_times_id()

        changed = [
            {'queue_times_id': qt_id, 'name': name}
            for qt_id, name in group_names.items()
            if stored.get(qt_id) != name
        ]
        return repo.bulk_upsert(changed, chunk_size=self.chunk_size)

    def _sync_parks(self, session: Session, parks: Dict[int, Dict[str, Any]]) -> int:
        # One lookup pass resolves every park's owning group
        group_ids = ParkGroupRepository(session).get_id_map()
        repo = ParkRepository(session)
        stored = repo.get_sync_snapshot()

        changed = []
        for qt_id, park in parks.items():
            row = {key: value for key, value in park.items() if key != 'group_queue_times_id'}
            row['group_id'] = group_ids.get(park['group_queue_times_id'])

            current = tuple(row[column] for column in PARK_SYNC_COLUMNS)
            if stored.get(qt_id) != current:
                changed.append(row)

        return repo.bulk_upsert(changed, chunk_size=self.chunk_size)
