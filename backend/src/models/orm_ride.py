"""
SQLAlchemy ORM Model: Ride
Represents theme park ride/attraction data.
"""

from sqlalchemy import String, Boolean, ForeignKey, DateTime, Index, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from models.base import Base
from datetime import datetime
from typing import List, Optional


class Ride(Base):
    __tablename__ = "rides"
    # Ride IDs are only unique within one park's feed
    __table_args__ = (
        UniqueConstraint('queue_times_id', 'park_id', name='uq_ride_park'),
        Index('idx_ride_park', 'park_id'),
        Index('idx_ride_is_active', 'is_active'),
    )

    # Primary Key
    ride_id: Mapped[int] = mapped_column(primary_key=True)

    # Foreign Keys
    park_id: Mapped[int] = mapped_column(
        ForeignKey("parks.park_id", ondelete="CASCADE"),
        nullable=False
    )
    theme_area_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("theme_areas.theme_area_id", ondelete="SET NULL"),
        comment="NULL for rides listed outside any land"
    )

    # Queue-Times.com Integration
    queue_times_id: Mapped[int] = mapped_column(
        nullable=False,
        comment="External ID from Queue-Times.com API"
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="FALSE once the ride disappears from the upstream feed"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    # Relationships
    park: Mapped["Park"] = relationship(
        "Park",
        back_populates="rides"
    )
    theme_area: Mapped[Optional["ThemeArea"]] = relationship(
        "ThemeArea",
        back_populates="rides"
    )
    samples: Mapped[List["QueueSample"]] = relationship(
        "QueueSample",
        back_populates="ride",
        lazy="select",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Ride(ride_id={self.ride_id}, name='{self.name}', park_id={self.park_id})>"
