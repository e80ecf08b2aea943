"""
Theme Park Crowd Tracker - Ride Repository
Provides data access layer for rides table using SQLAlchemy ORM.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from models.orm_ride import Ride
from utils.logger import logger


@dataclass(frozen=True)
class RideSighting:
    """A ride as listed in one park document."""
    queue_times_id: int
    name: str
    theme_area_id: Optional[int] = None


class RideRepository:
    """
    Repository for ride entity operations.

    Implements:
    - Per-park upsert of rides seen in the live feed (insert, rename, reparent, reactivate)
    - Soft-disable of rides that vanished from the feed
    - Active ride lookups for the crowd-level engine
    """

    def __init__(self, session: Session):
        """
        Initialize repository with SQLAlchemy session.

        Args:
            session: SQLAlchemy session object
        """
        self.session = session

    def get_by_park(self, park_id: int) -> Dict[int, Ride]:
        """All stored rides of a park keyed by external ride ID."""
        rides = self.session.scalars(
            select(Ride).where(Ride.park_id == park_id)
        ).all()
        return {ride.queue_times_id: ride for ride in rides}

    def upsert_for_park(self, park_id: int, sightings: Iterable[RideSighting]) -> Dict[int, int]:
        """
        Reconcile rides seen in a park document with the rides table.

        New rides are inserted. Known rides get their name and theme area
        refreshed and are marked active again.

        Args:
            park_id: Internal park ID
            sightings: Rides from the document

        Returns:
            Map of external ride ID -> ride_id for every sighting
        """
        existing = self.get_by_park(park_id)
        touched = {}

        for sighting in sightings:
            ride = existing.get(sighting.queue_times_id)
            if ride is None:
                ride = Ride(
                    queue_times_id=sighting.queue_times_id,
                    park_id=park_id,
                    theme_area_id=sighting.theme_area_id,
                    name=sighting.name,
                    is_active=True
                )
                self.session.add(ride)
                existing[sighting.queue_times_id] = ride
            else:
                # Attribute sets with equal values are not flushed as UPDATEs
                if ride.name != sighting.name:
                    ride.name = sighting.name
                if ride.theme_area_id != sighting.theme_area_id:
                    ride.theme_area_id = sighting.theme_area_id
                if not ride.is_active:
                    ride.is_active = True
            touched[sighting.queue_times_id] = ride

        self.session.flush()
        return {qt_id: ride.ride_id for qt_id, ride in touched.items()}

    def deactivate_missing(self, park_id: int, seen_queue_times_ids: Set[int]) -> int:
        """
        Soft-disable active rides of a park that were not in its latest document.

        Historical samples stay attached to the ride.

        Returns:
            Number of rides deactivated
        """
        stmt = (
            update(Ride)
            .where(Ride.park_id == park_id, Ride.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        if seen_queue_times_ids:
            stmt = stmt.where(Ride.queue_times_id.not_in(seen_queue_times_ids))

        deactivated = self.session.execute(stmt).rowcount or 0
        if deactivated:
            logger.info(f"Deactivated {deactivated} rides missing from park feed", extra={
                "park_id": park_id,
                "rides_deactivated": deactivated
            })
        return deactivated

    def get_active_ride_ids(self, park_id: int) -> List[int]:
        """IDs of active rides in a park."""
        return list(self.session.scalars(
            select(Ride.ride_id)
            .where(Ride.park_id == park_id, Ride.is_active.is_(True))
            .order_by(Ride.ride_id)
        ).all())

    def get_active_ride_ids_by_park(self, park_ids: Iterable[int]) -> Dict[int, List[int]]:
        """
        Active ride IDs grouped by park, in one query.

        Parks without active rides map to an empty list.
        """
        park_ids = list(park_ids)
        result: Dict[int, List[int]] = defaultdict(list)
        if not park_ids:
            return {}

        rows = self.session.execute(
            select(Ride.park_id, Ride.ride_id)
            .where(Ride.park_id.in_(park_ids), Ride.is_active.is_(True))
            .order_by(Ride.park_id, Ride.ride_id)
        ).all()
        for row in rows:
            result[row.park_id].append(row.ride_id)

        return {park_id: result.get(park_id, []) for park_id in park_ids}
