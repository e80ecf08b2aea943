"""
Theme Park Crowd Tracker - Crowd Level Result Model
Ephemeral crowd index for one park, produced on demand and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


# Upper bounds (exclusive) of each label band, checked in order
CROWD_LEVEL_LABELS = (
    (30, "Very Low"),
    (60, "Low"),
    (120, "Moderate"),
    (160, "High"),
    (200, "Very High"),
)
EXTREME_LABEL = "Extreme"


def label_for_level(level: int) -> str:
    """
    Map a crowd level to its label.

    Examples:
        >>> label_for_level(0)
        'Very Low'
        >>> label_for_level(150)
        'Very High'
        >>> label_for_level(240)
        'Extreme'
    """
    for upper_bound, label in CROWD_LEVEL_LABELS:
        if level < upper_bound:
            return label
    return EXTREME_LABEL


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class CrowdLevelResult:
    """
    Present-vs-historical crowd index for a park.

    Attributes:
        level: Current average as a percentage of the historical baseline (0 when unknown)
        label: Band name for level
        rides_used: Number of top rides the current average was taken from (K)
        total_rides: Number of open rides reporting a wait time (N)
        historical_baseline: 95th percentile of hourly average waits, minutes
        current_average: Mean wait of the selected rides, minutes
        confidence: 10-100 data-backing score, 0 only on the default result
        calculated_at: UTC time of the computation
        reason: Why the default result was returned (diagnostics only)
    """
    level: int
    label: str
    rides_used: int
    total_rides: int
    historical_baseline: int
    current_average: int
    confidence: int
    calculated_at: datetime = field(default_factory=_utc_now)
    reason: Optional[str] = None

    @property
    def is_default(self) -> bool:
        return self.reason is not None

    @classmethod
    def default(cls, reason: str) -> 'CrowdLevelResult':
        """Well-formed fallback returned for every failure mode."""
        return cls(
            level=0,
            label=label_for_level(0),
            rides_used=0,
            total_rides=0,
            historical_baseline=0,
            current_average=0,
            confidence=0,
            reason=reason
        )

    def to_dict(self) -> dict:
        """
        Convert to dictionary for API responses.

        The fallback reason stays internal.
        """
        return {
            "level": self.level,
            "label": self.label,
            "rides_used": self.rides_used,
            "total_rides": self.total_rides,
            "historical_baseline": self.historical_baseline,
            "current_average": self.current_average,
            "confidence": self.confidence,
            "calculated_at": self.calculated_at.isoformat()
        }
