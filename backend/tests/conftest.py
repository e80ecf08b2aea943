"""
Theme Park Crowd Tracker - pytest Configuration and Fixtures

Provides shared test fixtures for:
- A temporary SQLite database created from the ORM metadata
- Session factories and an in-memory result cache
- Sample upstream documents (catalog and per-park queue times)
- Seed helpers for parks, rides and samples
"""

import pytest
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import Mock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database.connection import enable_sqlite_savepoints, session_scope
from models import Base, Park, ParkGroup, QueueSample, Ride, ThemeArea
from utils.cache import QueryCache


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine(tmp_path):
    """
    SQLite engine on a temp file with every table created.

    A file (not :memory:) so sessions on different threads see the same data.
    """
    engine = enable_sqlite_savepoints(create_engine(
        f"sqlite:///{tmp_path / 'crowd_tracker_test.db'}",
        connect_args={"check_same_thread": False},
    ))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """
    Session for direct repository tests.

    Rolled back and closed after the test.
    """
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def memory_cache():
    """Fresh in-memory result cache."""
    return QueryCache(ttl_seconds=300)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

@pytest.fixture
def sample_catalog():
    """
    Upstream parks.json document: two groups, three parks.

    Coordinates are strings, as the feed sends them.
    """
    return [
        {
            "id": 2,
            "name": "Walt Disney Attractions",
            "parks": [
                {
                    "id": 6,
                    "name": "Disney Magic Kingdom",
                    "country": "United States",
                    "continent": "North America",
                    "latitude": "28.417663",
                    "longitude": "-81.581212",
                    "timezone": "America/New_York"
                },
                {
                    "id": 5,
                    "name": "Epcot",
                    "country": "United States",
                    "continent": "North America",
                    "latitude": "28.376800",
                    "longitude": "-81.549400",
                    "timezone": "America/New_York"
                }
            ]
        },
        {
            "id": 11,
            "name": "Cedar Fair Entertainment Company",
            "parks": [
                {
                    "id": 57,
                    "name": "Cedar Point",
                    "country": "United States",
                    "continent": "North America",
                    "latitude": "41.482207",
                    "longitude": "-82.683523",
                    "timezone": "America/New_York"
                }
            ]
        }
    ]


@pytest.fixture
def sample_park_document():
    """
    Upstream queue_times.json document: two lands plus one direct ride.
    """
    return {
        "lands": [
            {
                "id": 54,
                "name": "Tomorrowland",
                "rides": [
                    {
                        "id": 284,
                        "name": "Space Mountain",
                        "is_open": True,
                        "wait_time": 45,
                        "last_updated": "2026-10-18T14:05:22.000Z"
                    },
                    {
                        "id": 1181,
                        "name": "TRON Lightcycle / Run",
                        "is_open": True,
                        "wait_time": 70,
                        "last_updated": "2026-10-18T14:05:22.000Z"
                    }
                ]
            },
            {
                "id": 53,
                "name": "Fantasyland",
                "rides": [
                    {
                        "id": 130,
                        "name": "Peter Pan's Flight",
                        "is_open": False,
                        "wait_time": 0,
                        "last_updated": "2026-10-18T14:05:22.000Z"
                    }
                ]
            }
        ],
        "rides": [
            {
                "id": 9001,
                "name": "Walt Disney World Railroad",
                "is_open": True,
                "wait_time": 5,
                "last_updated": "2026-10-18T14:05:22.000Z"
            }
        ]
    }


@pytest.fixture
def mock_queue_times_client(sample_catalog, sample_park_document):
    """
    Mock Queue-Times API client for testing collectors.

    Returns:
        Mock QueueTimesClient
    """
    client = Mock()
    client.parks_url = "https://queue-times.com/parks.json"
    client.get_parks = Mock(return_value=sample_catalog)
    client.get_park_queue_times = Mock(return_value=sample_park_document)
    return client


# ============================================================================
# Seed Helpers
# ============================================================================

@pytest.fixture
def seed_park(session_factory):
    """
    Insert a park (and its group) and return its park_id.

    Usage:
        park_id = seed_park(queue_times_id=6, name="Magic Kingdom")
    """
    def _seed(queue_times_id: int = 6, name: str = "Disney Magic Kingdom",
              timezone: str = "America/New_York", group_queue_times_id: int = 2) -> int:
        with session_scope(session_factory) as session:
            group = session.query(ParkGroup).filter_by(queue_times_id=group_queue_times_id).first()
            if group is None:
                group = ParkGroup(queue_times_id=group_queue_times_id, name=f"Group {group_queue_times_id}")
                session.add(group)
                session.flush()
            park = Park(
                queue_times_id=queue_times_id,
                name=name,
                country="United States",
                continent="North America",
                timezone=timezone,
                group_id=group.group_id
            )
            session.add(park)
            session.flush()
            return park.park_id
    return _seed


@pytest.fixture
def seed_rides(session_factory):
    """
    Insert active rides for a park and return their ride_ids in order.

    Usage:
        ride_ids = seed_rides(park_id, count=10)
    """
    def _seed(park_id: int, count: int = 3, first_queue_times_id: int = 1000,
              land_queue_times_id: Optional[int] = None) -> List[int]:
        with session_scope(session_factory) as session:
            theme_area_id = None
            if land_queue_times_id is not None:
                area = ThemeArea(queue_times_id=land_queue_times_id, park_id=park_id, name="Main Street")
                session.add(area)
                session.flush()
                theme_area_id = area.theme_area_id
            rides = [
                Ride(
                    queue_times_id=first_queue_times_id + i,
                    park_id=park_id,
                    theme_area_id=theme_area_id,
                    name=f"Ride {first_queue_times_id + i}",
                    is_active=True
                )
                for i in range(count)
            ]
            session.add_all(rides)
            session.flush()
            return [ride.ride_id for ride in rides]
    return _seed


@pytest.fixture
def seed_samples(session_factory):
    """
    Insert raw samples directly (bypassing dedup checks).

    Usage:
        seed_samples(ride_id, [(datetime(...), 30), ...], is_open=True)
    """
    def _seed(ride_id: int, readings: List[tuple], is_open: bool = True) -> int:
        with session_scope(session_factory) as session:
            for last_updated, wait_time in readings:
                session.add(QueueSample(
                    ride_id=ride_id,
                    wait_time=wait_time,
                    is_open=is_open,
                    last_updated=last_updated,
                    recorded_at=last_updated
                ))
        return len(readings)
    return _seed


def hourly_readings(end: datetime, hours: int, wait_time: int) -> List[tuple]:
    """(timestamp, wait) pairs one hour apart, ending at `end`."""
    return [(end - timedelta(hours=i), wait_time) for i in range(hours)]


@pytest.fixture
def hourly_history():
    """Expose hourly_readings() to tests as a fixture."""
    return hourly_readings
