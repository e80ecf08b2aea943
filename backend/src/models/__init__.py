# Theme Park Crowd Tracker - Models Package

# Import all ORM models to register them with SQLAlchemy's declarative base
# This ensures string-based relationship() forward references can be resolved
# IMPORTANT: Use relative imports to avoid duplicate module loading issues
from .base import Base, SessionLocal, create_session
from .orm_park_group import ParkGroup
from .orm_park import Park
from .orm_theme_area import ThemeArea
from .orm_ride import Ride
from .orm_queue_sample import QueueSample
from .orm_cache_entry import CacheEntry

__all__ = [
    'Base',
    'SessionLocal',
    'create_session',
    'ParkGroup',
    'Park',
    'ThemeArea',
    'Ride',
    'QueueSample',
    'CacheEntry',
]
