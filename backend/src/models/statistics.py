"""
Theme Park Crowd Tracker - Ingestion Statistics Models
Outcome records returned by the catalog synchronizer and the queue-time sampler.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class CatalogSyncResult:
    """Rows effectively written by one catalog sync run."""
    groups_written: int = 0
    parks_written: int = 0
    groups_seen: int = 0
    parks_seen: int = 0

    def to_dict(self) -> dict:
        return {
            "groups_written": self.groups_written,
            "parks_written": self.parks_written,
            "groups_seen": self.groups_seen,
            "parks_seen": self.parks_seen
        }


@dataclass
class ParkSampleOutcome:
    """Per-park result of one sampling pass."""
    park_id: int
    success: bool
    new_samples: int = 0
    skipped_duplicates: int = 0
    rides_seen: int = 0
    rides_deactivated: int = 0
    error: Optional[str] = None


@dataclass
class SamplingResult:
    """
    Totals for one sampler cycle.

    A failing park never aborts the cycle; it shows up in parks_failed and
    errors while the other parks' samples are still counted.
    """
    new_samples: int = 0
    skipped_duplicates: int = 0
    parks_processed: int = 0
    parks_failed: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, outcome: ParkSampleOutcome) -> None:
        """Fold one park's outcome into the totals."""
        if outcome.success:
            self.parks_processed += 1
            self.new_samples += outcome.new_samples
            self.skipped_duplicates += outcome.skipped_duplicates
        else:
            self.parks_failed += 1
            self.errors.append(f"park {outcome.park_id}: {outcome.error}")

    def to_dict(self) -> dict:
        return {
            "new_samples": self.new_samples,
            "skipped_duplicates": self.skipped_duplicates,
            "parks_processed": self.parks_processed,
            "parks_failed": self.parks_failed,
            "errors": list(self.errors)
        }


@dataclass
class SampleStatistics:
    """Dedup health of the queue_samples table."""
    total_samples: int
    distinct_timestamps: int

    @property
    def duplicate_prevention_rate(self) -> float:
        """
        Share of stored samples that share a source timestamp with another
        sample, as a percentage.
        """
        if self.total_samples == 0:
            return 0.0
        return round((1 - self.distinct_timestamps / self.total_samples) * 100, 2)

    def to_dict(self) -> dict:
        return {
            "total_samples": self.total_samples,
            "distinct_timestamps": self.distinct_timestamps,
            "duplicate_prevention_rate": self.duplicate_prevention_rate
        }
