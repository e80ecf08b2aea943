"""
Theme Park Crowd Tracker - Park Reference Model
Lightweight park handle streamed to the sampler from the parks table.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ParkRef:
    """
    Minimal park data needed to poll the per-park feed.

    Attributes match the parks table columns of the same name.
    """
    park_id: int
    queue_times_id: int
    name: str
    timezone: Optional[str] = None

    @property
    def queue_times_url(self) -> str:
        """
        Get Queue-Times.com URL for this park.

        Returns:
            URL to park page on Queue-Times.com
        """
        return f"https://queue-times.com/parks/{self.queue_times_id}"

    def to_dict(self) -> dict:
        return {
            "park_id": self.park_id,
            "queue_times_id": self.queue_times_id,
            "name": self.name,
            "timezone": self.timezone,
            "queue_times_url": self.queue_times_url
        }

    @classmethod
    def from_row(cls, row) -> 'ParkRef':
        """
        Create ParkRef instance from database row.

        Args:
            row: SQLAlchemy Row object or dict-like object

        Returns:
            ParkRef instance
        """
        if isinstance(row, dict):
            return cls(
                park_id=row['park_id'],
                queue_times_id=row['queue_times_id'],
                name=row['name'],
                timezone=row.get('timezone')
            )
        return cls(
            park_id=row.park_id,
            queue_times_id=row.queue_times_id,
            name=row.name,
            timezone=row.timezone
        )
