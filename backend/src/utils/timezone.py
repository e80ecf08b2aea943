"""
Theme Park Crowd Tracker - Timezone Utilities
All stored timestamps are naive UTC datetimes.

Queue-Times.com reports last_updated as ISO-8601 strings with an offset.
Strings without one are read in the park's own timezone.
"""

from datetime import datetime, timedelta
from typing import Optional

import pytz
from dateutil import parser as date_parser

from utils.logger import logger

UTC_TZ = pytz.UTC


def utc_now() -> datetime:
    """
    Current time as a naive UTC datetime (the storage convention).
    """
    return datetime.now(UTC_TZ).replace(tzinfo=None)


def to_naive_utc(dt: datetime, fallback_tz: Optional[str] = None) -> datetime:
    """
    Convert a datetime to naive UTC.

    Args:
        dt: Aware or naive datetime
        fallback_tz: IANA timezone assumed for naive input (UTC when None)

    Returns:
        Naive datetime in UTC
    """
    if dt.tzinfo is None:
        if not fallback_tz:
            return dt
        try:
            dt = pytz.timezone(fallback_tz).localize(dt)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone '{fallback_tz}', assuming UTC")
            return dt
    return dt.astimezone(UTC_TZ).replace(tzinfo=None)


def parse_to_utc(iso_string: Optional[str], fallback_tz: Optional[str] = None) -> Optional[datetime]:
    """
    Parse ISO datetime string to naive UTC datetime.

    Args:
        iso_string: ISO format datetime string (may include timezone)
        fallback_tz: Timezone to use if not in string

    Returns:
        UTC datetime or None if missing or unparseable
    """
    if not iso_string or not isinstance(iso_string, str):
        return None
    try:
        dt = date_parser.isoparse(iso_string)
    except (ValueError, OverflowError) as e:
        logger.warning(f"Failed to parse datetime '{iso_string}': {e}")
        return None
    return to_naive_utc(dt, fallback_tz)


def utc_day_key(now: Optional[datetime] = None) -> str:
    """
    Calendar day (UTC) used to roll daily cache keys, e.g. "2026-10-18".
    """
    return (now or utc_now()).date().isoformat()


def window_start(days: int, now: Optional[datetime] = None) -> datetime:
    """Start of a trailing window of `days` days ending now (naive UTC)."""
    return (now or utc_now()) - timedelta(days=days)
