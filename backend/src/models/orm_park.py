"""
SQLAlchemy ORM Model: Park
Represents theme park master data.
"""

from sqlalchemy import String, Double, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from models.base import Base
from datetime import datetime
from typing import List, Optional


class Park(Base):
    __tablename__ = "parks"
    __table_args__ = (
        Index('idx_park_country', 'country'),
        Index('idx_park_continent_country_name', 'continent', 'country', 'name'),
    )

    # Primary Key
    park_id: Mapped[int] = mapped_column(primary_key=True)

    # Queue-Times.com Integration
    queue_times_id: Mapped[int] = mapped_column(
        nullable=False,
        unique=True,
        comment="External ID from Queue-Times.com API"
    )

    # Foreign Keys
    group_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("park_groups.group_id", ondelete="CASCADE"),
        index=True
    )

    # Basic Information
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    country: Mapped[Optional[str]] = mapped_column(String(100))
    continent: Mapped[Optional[str]] = mapped_column(String(100))

    # Geographic Coordinates
    latitude: Mapped[Optional[float]] = mapped_column(Double)
    longitude: Mapped[Optional[float]] = mapped_column(Double)

    timezone: Mapped[Optional[str]] = mapped_column(
        String(50),
        comment="IANA timezone reported by the feed"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    # Relationships
    park_group: Mapped[Optional["ParkGroup"]] = relationship(
        "ParkGroup",
        back_populates="parks"
    )
    theme_areas: Mapped[List["ThemeArea"]] = relationship(
        "ThemeArea",
        back_populates="park",
        lazy="select",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    rides: Mapped[List["Ride"]] = relationship(
        "Ride",
        back_populates="park",
        lazy="select",  # Default: lazy load, use selectinload() for hot paths
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Park(park_id={self.park_id}, name='{self.name}', queue_times_id={self.queue_times_id})>"
