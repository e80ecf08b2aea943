"""
SQLAlchemy ORM Model: ParkGroup
Operator/company grouping of parks as published by Queue-Times.com.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from models.base import Base
from typing import List


class ParkGroup(Base):
    __tablename__ = "park_groups"

    # Primary Key
    group_id: Mapped[int] = mapped_column(primary_key=True)

    # Queue-Times.com Integration
    queue_times_id: Mapped[int] = mapped_column(
        nullable=False,
        unique=True,
        comment="External ID from Queue-Times.com API"
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    parks: Mapped[List["Park"]] = relationship(
        "Park",
        back_populates="park_group",
        lazy="select",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<ParkGroup(group_id={self.group_id}, name='{self.name}')>"
