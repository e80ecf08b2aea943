"""
Theme Park Crowd Tracker - Theme Area Repository
Provides data access layer for the theme_areas table using SQLAlchemy ORM.
"""

from typing import Dict, Iterable, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.orm_theme_area import ThemeArea


class ThemeAreaRepository:
    """Per-park upsert of themed lands."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_park(self, park_id: int) -> Dict[int, ThemeArea]:
        """
        All stored lands of a park keyed by external land ID.
        """
        areas = self.session.scalars(
            select(ThemeArea).where(ThemeArea.park_id == park_id)
        ).all()
        return {area.queue_times_id: area for area in areas}

    def upsert_for_park(self, park_id: int, lands: Iterable[Tuple[int, str]]) -> Dict[int, int]:
        """
        Create unseen lands and rename changed ones for one park.

        Args:
            park_id: Internal park ID
            lands: (external land ID, name) pairs from the park document

        Returns:
            Map of external land ID -> theme_area_id for every land given
        """
        existing = self.get_by_park(park_id)
        touched = {}

        for queue_times_id, name in lands:
            area = existing.get(queue_times_id)
            if area is None:
                area = ThemeArea(queue_times_id=queue_times_id, park_id=park_id, name=name)
                self.session.add(area)
                existing[queue_times_id] = area
            elif area.name != name:
                area.name = name
            touched[queue_times_id] = area

        # Assigns theme_area_id to new rows
        self.session.flush()
        return {qt_id: area.theme_area_id for qt_id, area in touched.items()}
