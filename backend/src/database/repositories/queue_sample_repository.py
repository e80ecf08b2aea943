"""
Theme Park Crowd Tracker - Queue Sample Repository
Data access for the queue_samples time-series table using SQLAlchemy ORM.

Samples are append-only: this repository never updates or deletes rows.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.orm_queue_sample import QueueSample
from models.sample import LatestSample
from models.statistics import SampleStatistics
from utils.logger import logger
from utils.sql_helpers import hour_bucket


@dataclass(frozen=True)
class CoverageStats:
    """Raw aggregate over qualifying samples (open, wait > 0) in a window."""
    first_sample: Optional[datetime]
    last_sample: Optional[datetime]
    sample_count: int


class QueueSampleRepository:
    """
    Repository for wait-time samples.

    Implements:
    - Conditional insert keyed by (ride_id, last_updated, wait_time)
    - Most recent sample per ride (single ride and batch forms)
    - Hourly-bucketed averages and coverage aggregates for the crowd-level engine
    """

    def __init__(self, session: Session):
        """
        Initialize repository with SQLAlchemy session.

        Args:
            session: SQLAlchemy session object
        """
        self.session = session

    def sample_exists(self, ride_id: int, last_updated: datetime, wait_time: int) -> bool:
        """Check whether the dedup key is already stored."""
        row = self.session.execute(
            select(QueueSample.sample_id)
            .where(
                QueueSample.ride_id == ride_id,
                QueueSample.last_updated == last_updated,
                QueueSample.wait_time == wait_time
            )
            .limit(1)
        ).first()
        return row is not None

    def insert_if_absent(self, ride_id: int, wait_time: int, is_open: bool,
                         last_updated: datetime, recorded_at: datetime) -> bool:
        """
        Append a sample unless its dedup key already exists.

        The pre-check avoids most constraint violations. A concurrent writer
        can still win the race between check and insert; the unique constraint
        then rejects the row inside a savepoint, so the surrounding transaction
        stays usable.

        Args:
            ride_id: Internal ride ID
            wait_time: Minutes, already clamped to >= 0
            is_open: Ride open flag
            last_updated: Source timestamp (naive UTC)
            recorded_at: Ingestion timestamp (naive UTC)

        Returns:
            True if a new row was written, False if it was a duplicate
        """
        if self.sample_exists(ride_id, last_updated, wait_time):
            return False

        try:
            with self.session.begin_nested():
                self.session.add(QueueSample(
                    ride_id=ride_id,
                    wait_time=wait_time,
                    is_open=is_open,
                    last_updated=last_updated,
                    recorded_at=recorded_at
                ))
        except IntegrityError:
            logger.debug("Duplicate sample rejected by unique constraint", extra={
                "ride_id": ride_id,
                "last_updated": last_updated.isoformat(),
                "wait_time": wait_time
            })
            return False

        return True

    def get_latest_for_ride(self, ride_id: int) -> Optional[LatestSample]:
        """
        Most recent sample of one ride by source timestamp.

        Returns:
            LatestSample or None if the ride has no samples
        """
        sample = self.session.scalars(
            select(QueueSample)
            .where(QueueSample.ride_id == ride_id)
            .order_by(
                QueueSample.last_updated.desc(),
                QueueSample.recorded_at.desc(),
                QueueSample.sample_id.desc()
            )
            .limit(1)
        ).first()
        return LatestSample.from_row(sample) if sample else None

    def get_latest_for_rides(self, ride_ids: Iterable[int]) -> Dict[int, LatestSample]:
        """
        Most recent sample per ride for a set of rides, in one query.

        Rides without samples are absent from the result.

        Args:
            ride_ids: Internal ride IDs

        Returns:
            Map of ride_id -> LatestSample
        """
        ride_ids = list(ride_ids)
        if not ride_ids:
            return {}

        latest = (
            select(
                QueueSample.ride_id.label('ride_id'),
                func.max(QueueSample.last_updated).label('max_updated')
            )
            .where(QueueSample.ride_id.in_(ride_ids))
            .group_by(QueueSample.ride_id)
            .subquery()
        )

        rows = self.session.execute(
            select(
                QueueSample.ride_id,
                QueueSample.wait_time,
                QueueSample.is_open,
                QueueSample.last_updated,
                QueueSample.recorded_at
            )
            .join(latest, and_(
                QueueSample.ride_id == latest.c.ride_id,
                QueueSample.last_updated == latest.c.max_updated
            ))
            .order_by(QueueSample.recorded_at, QueueSample.sample_id)
        ).all()

        # Several samples can share the newest timestamp; the last ingested wins
        return {row.ride_id: LatestSample.from_row(row) for row in rows}

    def get_hourly_averages(self, ride_ids: Iterable[int], since: datetime) -> List[float]:
        """
        Average wait per clock hour across a ride set.

        Only samples with is_open = TRUE and wait_time > 0 qualify.

        Args:
            ride_ids: Internal ride IDs
            since: Window start (naive UTC, inclusive)

        Returns:
            One average per hour bucket that has qualifying samples
        """
        ride_ids = list(ride_ids)
        if not ride_ids:
            return []

        bucket = hour_bucket(self.session, QueueSample.last_updated).label('hour_slot')
        rows = self.session.execute(
            select(bucket, func.avg(QueueSample.wait_time).label('avg_wait'))
            .where(self._qualifying(ride_ids, since))
            .group_by(bucket)
        ).all()
        return [float(row.avg_wait) for row in rows]

    def get_coverage_stats(self, ride_ids: Iterable[int], since: datetime) -> CoverageStats:
        """
        First/last source timestamp and count of qualifying samples in the window.
        """
        ride_ids = list(ride_ids)
        if not ride_ids:
            return CoverageStats(first_sample=None, last_sample=None, sample_count=0)

        row = self.session.execute(
            select(
                func.min(QueueSample.last_updated).label('first_sample'),
                func.max(QueueSample.last_updated).label('last_sample'),
                func.count(QueueSample.sample_id).label('sample_count')
            )
            .where(self._qualifying(ride_ids, since))
        ).one()
        return CoverageStats(
            first_sample=row.first_sample,
            last_sample=row.last_sample,
            sample_count=int(row.sample_count or 0)
        )

    def get_statistics(self) -> SampleStatistics:
        """
        Total samples and distinct source timestamps across the table.

        Also serves as the readiness check at scheduler startup.
        """
        row = self.session.execute(
            select(
                func.count(QueueSample.sample_id).label('total'),
                func.count(func.distinct(QueueSample.last_updated)).label('distinct_timestamps')
            )
        ).one()
        return SampleStatistics(
            total_samples=int(row.total or 0),
            distinct_timestamps=int(row.distinct_timestamps or 0)
        )

    def count_for_ride(self, ride_id: int) -> int:
        return self.session.execute(
            select(func.count(QueueSample.sample_id)).where(QueueSample.ride_id == ride_id)
        ).scalar_one()

    @staticmethod
    def _qualifying(ride_ids: List[int], since: datetime):
        return and_(
            QueueSample.ride_id.in_(ride_ids),
            QueueSample.last_updated >= since,
            QueueSample.is_open.is_(True),
            QueueSample.wait_time > 0
        )
