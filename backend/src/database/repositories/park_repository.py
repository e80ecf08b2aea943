"""
Theme Park Crowd Tracker - Park Repository
Provides data access layer for parks table using SQLAlchemy ORM.
Returns ParkRef dataclasses to the sampler.
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from database.connection import session_scope
from models.orm_park import Park
from models.park import ParkRef
from utils.config import CATALOG_UPSERT_CHUNK_SIZE, PARK_PAGE_SIZE
from utils.logger import logger
from utils.sql_helpers import chunked, upsert_statement


# Scalar columns written by the catalog sync, in comparison order
PARK_SYNC_COLUMNS = (
    'name', 'country', 'continent', 'latitude', 'longitude', 'timezone', 'group_id'
)


class ParkRepository:
    """
    Repository for park entity operations.

    Implements:
    - Batch upsert by Queue-Times external ID
    - Snapshot of stored scalar fields for change detection
    - Keyset pagination of parks (streamed by iter_park_refs)
    """

    def __init__(self, session: Session):
        """
        Initialize repository with SQLAlchemy session.

        Args:
            session: SQLAlchemy session object
        """
        self.session = session

    def get_by_queue_times_id(self, queue_times_id: int) -> Optional[ParkRef]:
        """
        Fetch park by Queue-Times.com external ID.

        Args:
            queue_times_id: Queue-Times.com park ID

        Returns:
            ParkRef or None if not found
        """
        row = self.session.execute(
            select(Park.park_id, Park.queue_times_id, Park.name, Park.timezone)
            .where(Park.queue_times_id == queue_times_id)
        ).first()
        return ParkRef.from_row(row) if row else None

    def get_sync_snapshot(self) -> Dict[int, Tuple[Any, ...]]:
        """
        Stored sync columns of every park, keyed by external ID.

        Returns:
            Dictionary of queue_times_id to a tuple ordered like PARK_SYNC_COLUMNS
        """
        columns = [getattr(Park, name) for name in PARK_SYNC_COLUMNS]
        rows = self.session.execute(select(Park.queue_times_id, *columns)).all()
        return {row[0]: tuple(row[1:]) for row in rows}

    def bulk_upsert(self, parks: List[Dict[str, Any]],
                    chunk_size: int = CATALOG_UPSERT_CHUNK_SIZE) -> int:
        """
        Insert or update parks in batches.

        Args:
            parks: Dicts with queue_times_id plus every PARK_SYNC_COLUMNS key
            chunk_size: Rows per INSERT statement

        Returns:
            Number of rows sent to the database
        """
        if not parks:
            return 0

        for chunk in chunked(parks, chunk_size):
            stmt = upsert_statement(
                self.session,
                Park,
                list(chunk),
                conflict_columns=['queue_times_id'],
                update_columns=list(PARK_SYNC_COLUMNS)
            )
            self.session.execute(stmt)

        logger.debug(f"Upserted {len(parks)} parks")
        return len(parks)

    def count(self) -> int:
        return self.session.execute(select(func.count(Park.park_id))).scalar_one()

    def get_page(self, after_park_id: int = 0, page_size: int = PARK_PAGE_SIZE) -> List[ParkRef]:
        """
        Next page of parks ordered by park_id (keyset pagination).

        Args:
            after_park_id: Last park_id of the previous page (0 for the first page)
            page_size: Maximum parks returned

        Returns:
            List of ParkRef, empty when exhausted
        """
        rows = self.session.execute(
            select(Park.park_id, Park.queue_times_id, Park.name, Park.timezone)
            .where(Park.park_id > after_park_id)
            .order_by(Park.park_id)
            .limit(page_size)
        ).all()
        return [ParkRef.from_row(row) for row in rows]


def iter_park_refs(session_factory: Callable[[], Session],
                   page_size: int = PARK_PAGE_SIZE) -> Iterator[ParkRef]:
    """
    Stream every park, one short-lived session per page.

    No session stays open while the caller processes a page, so writers are
    never blocked by the listing.
    """
    after_park_id = 0
    while True:
        with session_scope(session_factory) as session:
            page = ParkRepository(session).get_page(after_park_id, page_size)
        if not page:
            return
        yield from page
        after_park_id = page[-1].park_id
