"""
Theme Park Crowd Tracker - Latest Sample Model
Most recent wait-time observation for one ride, as read by the crowd-level engine.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class LatestSample:
    """
    Projection of the newest queue_samples row for a ride.

    The same shape is stored in the result cache under ride_latest:{ride_id},
    so read paths can answer "current wait time" without a table scan.
    """
    ride_id: int
    wait_time: int
    is_open: bool
    last_updated: datetime
    recorded_at: Optional[datetime] = None

    @property
    def is_reporting(self) -> bool:
        """Open and carrying a wait time, so it counts toward the crowd level."""
        return self.is_open and self.wait_time is not None

    def to_cache_dict(self) -> Dict[str, Any]:
        """JSON-safe payload for the result cache."""
        return {
            "ride_id": self.ride_id,
            "wait_time": self.wait_time,
            "is_open": self.is_open,
            "last_updated": self.last_updated.isoformat(),
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None
        }

    @classmethod
    def from_cache_dict(cls, payload: Dict[str, Any]) -> 'LatestSample':
        recorded_at = payload.get("recorded_at")
        return cls(
            ride_id=int(payload["ride_id"]),
            wait_time=int(payload["wait_time"]),
            is_open=bool(payload["is_open"]),
            last_updated=datetime.fromisoformat(payload["last_updated"]),
            recorded_at=datetime.fromisoformat(recorded_at) if recorded_at else None
        )

    @classmethod
    def from_row(cls, row) -> 'LatestSample':
        """
        Create LatestSample instance from a queue_samples row or ORM object.
        """
        return cls(
            ride_id=row.ride_id,
            wait_time=row.wait_time,
            is_open=bool(row.is_open),
            last_updated=row.last_updated,
            recorded_at=row.recorded_at
        )
