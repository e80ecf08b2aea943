"""
SQLAlchemy ORM Model: QueueSample
Immutable wait-time observation for one ride, appended by the sampler.
"""

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from models.base import Base
from datetime import datetime


class QueueSample(Base):
    """
    Wait-time fact table.

    Rows are never updated or deleted by the ingestion pipeline. The
    (ride_id, last_updated, wait_time) unique constraint is the dedup key:
    overlapping or retried sampler runs turn into rejected inserts instead of
    duplicate rows.
    """
    __tablename__ = "queue_samples"

    # BIGINT in MySQL; SQLite only autoincrements INTEGER primary keys
    sample_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True
    )

    ride_id: Mapped[int] = mapped_column(
        ForeignKey("rides.ride_id", ondelete="CASCADE"),
        nullable=False
    )

    wait_time: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Wait time in minutes, clamped to >= 0"
    )
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment="UTC timestamp reported by Queue-Times.com"
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment="UTC timestamp when the sample was ingested"
    )

    __table_args__ = (
        UniqueConstraint('ride_id', 'last_updated', 'wait_time', name='uq_queue_sample_dedup'),
        Index('idx_queue_sample_ride_updated', 'ride_id', 'last_updated'),
        Index('idx_queue_sample_updated', 'last_updated'),
    )

    # Relationships
    ride: Mapped["Ride"] = relationship(
        "Ride",
        back_populates="samples"
    )

    def __repr__(self) -> str:
        return (f"<QueueSample(sample_id={self.sample_id}, ride_id={self.ride_id}, "
                f"wait_time={self.wait_time}, last_updated={self.last_updated})>")
