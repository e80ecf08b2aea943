"""
Crowd Level Calculator Tests

Tests the present-vs-history crowd index:
- Pure helpers (top-K selection, averaging, level, confidence)
- Full calculation against seeded history
- Default result for every failure mode
- History cache reuse and the time-bounded variant
"""

import threading
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import pytest
from freezegun import freeze_time

from database.repositories.queue_sample_repository import QueueSampleRepository
from database.repositories.ride_repository import RideRepository
from models.sample import LatestSample
from processor.crowd_level import (
    CrowdLevelCalculator,
    HISTORICAL_WINDOW_DAYS,
    confidence_score,
    crowd_level,
    current_average,
    round_half_up,
    select_top_rides,
)
from processor.latest_samples import write_latest_sample

NOW = datetime(2026, 10, 18, 14, 10, 0)


def _latest(ride_id, wait_time, is_open=True):
    return LatestSample(ride_id=ride_id, wait_time=wait_time, is_open=is_open, last_updated=NOW)


@pytest.fixture
def calculator(session_factory, memory_cache):
    calc = CrowdLevelCalculator(session_factory=session_factory, cache=memory_cache, max_workers=2)
    yield calc
    calc.shutdown(wait=True)


@pytest.fixture
def ten_ride_park(seed_park, seed_rides):
    """Park with 10 active rides; returns (park_id, ride_ids)."""
    park_id = seed_park()
    return park_id, seed_rides(park_id, count=10)


# ============================================================================
# Pure helpers
# ============================================================================

class TestHelpers:

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(149.49) == 149

    @pytest.mark.parametrize("count, expected_k", [(1, 1), (2, 2), (5, 3), (10, 3), (11, 4), (20, 6)])
    def test_select_top_rides_size(self, count, expected_k):
        samples = [_latest(i, i * 5) for i in range(1, count + 1)]

        assert len(select_top_rides(samples)) == expected_k

    def test_select_top_rides_picks_longest_waits(self):
        samples = [_latest(i, wait) for i, wait in enumerate([5, 50, 10, 45, 40, 15])]

        assert [s.wait_time for s in select_top_rides(samples)] == [50, 45, 40]

    def test_current_average_ignores_zero_waits(self):
        assert current_average([_latest(1, 0), _latest(2, 30), _latest(3, 60)]) == 45.0

    def test_current_average_all_zero(self):
        assert current_average([_latest(1, 0)]) == 0.0

    def test_crowd_level_linear(self):
        assert crowd_level(45, 30) == 150
        assert crowd_level(30, 30) == 100
        assert crowd_level(90, 30) == 300

    def test_crowd_level_without_baseline(self):
        assert crowd_level(45, 0) == 0


class TestConfidenceScore:

    def test_no_history_is_floor(self):
        assert confidence_score(None, None, 0, 3) == 10

    def test_full_window_full_density_is_max(self):
        first = NOW - timedelta(days=HISTORICAL_WINDOW_DAYS)
        count = HISTORICAL_WINDOW_DAYS * 24 * 3

        assert confidence_score(first, NOW, count, 3) == 100

    def test_partial_history(self):
        # coverage 365/730 = 50%, density 50% -> 0.7*50 + 0.3*50 = 50
        first = NOW - timedelta(days=365)
        count = HISTORICAL_WINDOW_DAYS * 24 * 3 // 2

        assert confidence_score(first, NOW, count, 3) == 50

    def test_partial_day_counts_as_whole_day(self):
        # 1 hour of history in a 2-day window: coverage 50%, density 1/48
        first = NOW - timedelta(hours=1)

        assert confidence_score(first, NOW, 1, 1, window_days=2) == 36

    def test_monotonic_in_coverage(self):
        count = 1000
        scores = [
            confidence_score(NOW - timedelta(days=days), NOW, count, 3)
            for days in (30, 180, 365, 730)
        ]

        assert scores == sorted(scores)
        assert all(10 <= s <= 100 for s in scores)

    def test_monotonic_in_density(self):
        first = NOW - timedelta(days=365)
        scores = [
            confidence_score(first, NOW, count, 3)
            for count in (100, 1000, 10000, HISTORICAL_WINDOW_DAYS * 24 * 3)
        ]

        assert scores == sorted(scores)
        assert all(10 <= s <= 100 for s in scores)
        # coverage alone is 0.7 * 50; full density adds the other 30
        assert scores[0] == 35
        assert scores[-1] == 65


# ============================================================================
# Calculation against the database
# ============================================================================

@freeze_time(NOW)
class TestCalculate:

    def test_ten_rides_against_baseline_of_thirty(self, calculator, ten_ride_park,
                                                  seed_samples, hourly_history):
        """
        Waits 5..50 across 10 open rides: top 3 = 50, 45, 40 (avg 45).
        History of those 3 rides averages 30 every hour: level 150, "Very High".
        """
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 5 * (i + 1)) for i, ride_id in enumerate(ride_ids)}
        for ride_id in ride_ids[-3:]:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 24, 30))

        result = calculator.calculate(park_id, latest)

        assert result.level == 150
        assert result.label == "Very High"
        assert result.rides_used == 3
        assert result.total_rides == 10
        assert result.current_average == 45
        assert result.historical_baseline == 30
        assert 10 <= result.confidence <= 100
        assert result.is_default is False
        assert result.calculated_at == NOW

    def test_reads_latest_samples_from_store(self, calculator, seed_park, seed_rides,
                                             seed_samples, hourly_history):
        park_id = seed_park()
        ride_ids = seed_rides(park_id, count=3)
        for ride_id in ride_ids:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 20, 20))
            seed_samples(ride_id, [(NOW - timedelta(minutes=5), 40)])

        result = calculator.calculate(park_id)

        # 20 hourly buckets at 20 plus the current hour at 40: p95 = 20
        assert result.current_average == 40
        assert result.historical_baseline == 20
        assert result.level == 200
        assert result.label == "Extreme"

    def test_closed_rides_not_counted(self, calculator, ten_ride_park, seed_samples, hourly_history):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 60, is_open=(i < 4)) for i, ride_id in enumerate(ride_ids)}
        for ride_id in ride_ids[:4]:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 12, 60))

        result = calculator.calculate(park_id, latest)

        assert result.total_rides == 4
        assert result.rides_used == 3
        assert result.level == 100

    def test_thin_history_gives_level_zero(self, calculator, ten_ride_park, seed_samples, hourly_history):
        """Fewer than 10 hourly buckets: no baseline, level 0, still a real result."""
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 30) for ride_id in ride_ids}
        seed_samples(ride_ids[0], hourly_history(NOW - timedelta(days=1), 9, 30))

        result = calculator.calculate(park_id, latest)

        assert result.level == 0
        assert result.label == "Very Low"
        assert result.historical_baseline == 0
        assert result.current_average == 30
        assert result.confidence >= 10
        assert result.is_default is False


@freeze_time(NOW)
class TestDefaultResults:

    def test_no_open_rides_skips_history_scan(self, calculator, ten_ride_park):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 0, is_open=False) for ride_id in ride_ids}

        with patch.object(CrowdLevelCalculator, '_scan_history') as mock_scan:
            result = calculator.calculate(park_id, latest)

        mock_scan.assert_not_called()
        assert result.level == 0
        assert result.label == "Very Low"
        assert result.confidence == 0
        assert result.reason == "no_open_rides"

    def test_empty_sample_map_opens_no_session(self, memory_cache):
        session_factory = Mock()
        calc = CrowdLevelCalculator(session_factory=session_factory, cache=memory_cache, max_workers=1)

        result = calc.calculate(1, {})

        session_factory.assert_not_called()
        assert result.reason == "no_open_rides"
        calc.shutdown()

    def test_park_without_rides(self, calculator, seed_park):
        result = calculator.calculate(seed_park())

        assert result.is_default is True
        assert result.confidence == 0

    def test_storage_error_returns_default(self, calculator, ten_ride_park):
        park_id, _ = ten_ride_park

        with patch.object(RideRepository, 'get_active_ride_ids', side_effect=RuntimeError("db gone")):
            result = calculator.calculate(park_id)

        assert result.reason == "calculation_error"
        assert result.level == 0
        assert result.confidence == 0

    def test_default_to_dict_hides_reason(self):
        from models.crowd_level import CrowdLevelResult

        payload = CrowdLevelResult.default("timeout").to_dict()

        assert "reason" not in payload
        assert payload["label"] == "Very Low"


# ============================================================================
# History cache
# ============================================================================

@freeze_time(NOW)
class TestHistoryCache:

    def test_second_calculation_reuses_history(self, calculator, ten_ride_park, seed_samples, hourly_history):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 5 * (i + 1)) for i, ride_id in enumerate(ride_ids)}
        for ride_id in ride_ids[-3:]:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 24, 30))
        original = QueueSampleRepository.get_hourly_averages

        with patch.object(QueueSampleRepository, 'get_hourly_averages',
                          autospec=True, side_effect=original) as mock_scan:
            first = calculator.calculate(park_id, latest)
            second = calculator.calculate(park_id, latest)

        assert mock_scan.call_count == 1
        assert first.level == second.level == 150

    def test_concurrent_callers_scan_once(self, calculator, ten_ride_park, seed_samples, hourly_history):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 30) for ride_id in ride_ids}
        seed_samples(ride_ids[0], hourly_history(NOW - timedelta(days=1), 12, 30))
        original = CrowdLevelCalculator._scan_history
        results = []

        with patch.object(CrowdLevelCalculator, '_scan_history',
                          autospec=True, side_effect=original) as mock_scan:
            threads = [
                threading.Thread(target=lambda: results.append(calculator.calculate(park_id, latest)))
                for _ in range(5)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join(10)

        assert mock_scan.call_count == 1
        assert len(results) == 5

    def test_cache_key_ignores_ride_order_and_rolls_daily(self, calculator):
        key = calculator.history_cache_key([3, 1, 2], now=NOW)

        assert key == calculator.history_cache_key([1, 2, 3], now=NOW)
        assert key.startswith("crowd_history:")
        assert key != calculator.history_cache_key([1, 2, 3], now=NOW + timedelta(days=1))

    def test_broken_cache_still_computes(self, session_factory, ten_ride_park, seed_samples, hourly_history):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 5 * (i + 1)) for i, ride_id in enumerate(ride_ids)}
        for ride_id in ride_ids[-3:]:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 24, 30))
        broken = Mock()
        broken.get.side_effect = ConnectionError("cache down")
        broken.set.side_effect = ConnectionError("cache down")
        calc = CrowdLevelCalculator(session_factory=session_factory, cache=broken, max_workers=1)

        result = calc.calculate(park_id, latest)

        assert result.level == 150
        calc.shutdown()

    def test_failed_scan_releases_key_lock(self, calculator, ten_ride_park):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 30) for ride_id in ride_ids}

        with patch.object(CrowdLevelCalculator, '_scan_history', side_effect=RuntimeError("lost connection")):
            result = calculator.calculate(park_id, latest)

        assert result.reason == "calculation_error"
        assert calculator._key_locks == {}


# ============================================================================
# Batch and time-bounded variants
# ============================================================================

@freeze_time(NOW)
class TestCalculateMany:

    def test_uses_cached_projection_and_defaults_empty_parks(self, calculator, memory_cache, seed_park,
                                                             seed_rides, seed_samples, hourly_history):
        busy_park = seed_park(queue_times_id=6)
        empty_park = seed_park(queue_times_id=5, name="Epcot")
        ride_ids = seed_rides(busy_park, count=3)
        for ride_id in ride_ids:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 12, 30))
            write_latest_sample(memory_cache, _latest(ride_id, 30))

        with patch.object(QueueSampleRepository, 'get_latest_for_rides') as mock_lookup:
            results = calculator.calculate_many([busy_park, empty_park])

        mock_lookup.assert_not_called()
        assert results[busy_park].level == 100
        assert results[empty_park].reason == "no_open_rides"

    def test_cache_misses_fall_back_to_store(self, calculator, seed_park, seed_rides,
                                             seed_samples, hourly_history):
        park_id = seed_park()
        ride_ids = seed_rides(park_id, count=3)
        for ride_id in ride_ids:
            seed_samples(ride_id, hourly_history(NOW - timedelta(days=1), 12, 30))
            seed_samples(ride_id, [(NOW - timedelta(minutes=5), 30)])

        results = calculator.calculate_many([park_id])

        assert results[park_id].current_average == 30
        assert results[park_id].total_rides == 3

    def test_broken_cache_falls_back_to_store(self, session_factory, seed_park, seed_rides,
                                              seed_samples, hourly_history):
        """A cache outage costs speed only; the store still answers."""
        park_id = seed_park()
        ride_ids = seed_rides(park_id, count=3)
        for ride_id in ride_ids:
            seed_samples(ride_id, hourly_history(NOW - timedelta(hours=1), 12, 30))
            seed_samples(ride_id, [(NOW - timedelta(minutes=5), 30)])
        broken = Mock()
        broken.get.side_effect = RuntimeError("cache down")
        broken.set.side_effect = RuntimeError("cache down")
        calc = CrowdLevelCalculator(session_factory=session_factory, cache=broken, max_workers=1)

        single = calc.calculate(park_id)
        many = calc.calculate_many([park_id])
        calc.shutdown()

        assert single.level == 100
        assert many[park_id].level == 100
        assert many[park_id].reason is None


class TestCalculateWithTimeout:

    def test_returns_result_within_deadline(self, calculator, ten_ride_park):
        park_id, ride_ids = ten_ride_park
        latest = {ride_id: _latest(ride_id, 0, is_open=False) for ride_id in ride_ids}

        result = calculator.calculate_with_timeout(park_id, timeout_seconds=5, latest_samples=latest)

        assert result.reason == "no_open_rides"

    def test_deadline_expiry_returns_default(self, calculator):
        release = threading.Event()

        def slow(park_id, latest_samples=None):
            release.wait(5)

        with patch.object(calculator, 'calculate', side_effect=slow):
            result = calculator.calculate_with_timeout(1, timeout_seconds=0.05)
        release.set()

        assert result.reason == "timeout"
        assert result.level == 0
        assert result.confidence == 0

    def test_shut_down_executor_returns_default(self, session_factory, memory_cache):
        calc = CrowdLevelCalculator(session_factory=session_factory, cache=memory_cache, max_workers=1)
        calc.shutdown()

        result = calc.calculate_with_timeout(1)

        assert result.reason == "executor_unavailable"
