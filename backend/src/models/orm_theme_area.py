"""
SQLAlchemy ORM Model: ThemeArea
Themed land within a park (Queue-Times "lands").
"""

from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from models.base import Base
from typing import List


class ThemeArea(Base):
    __tablename__ = "theme_areas"
    # Land IDs are only unique within one park's feed
    __table_args__ = (
        UniqueConstraint('queue_times_id', 'park_id', name='uq_theme_area_park'),
    )

    # Primary Key
    theme_area_id: Mapped[int] = mapped_column(primary_key=True)

    queue_times_id: Mapped[int] = mapped_column(
        nullable=False,
        comment="Land ID from Queue-Times.com API"
    )

    # Foreign Keys
    park_id: Mapped[int] = mapped_column(
        ForeignKey("parks.park_id", ondelete="CASCADE"),
        nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    park: Mapped["Park"] = relationship(
        "Park",
        back_populates="theme_areas"
    )
    rides: Mapped[List["Ride"]] = relationship(
        "Ride",
        back_populates="theme_area",
        lazy="select"
    )

    def __repr__(self) -> str:
        return f"<ThemeArea(theme_area_id={self.theme_area_id}, name='{self.name}', park_id={self.park_id})>"
