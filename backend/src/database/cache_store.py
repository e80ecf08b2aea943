"""
Theme Park Crowd Tracker - Persistent Result Cache
ResultCache backend stored in the cache_entries table.

Entries survive process restarts and are shared by every worker that uses the
same database. Values are stored as JSON; expiry is checked on read and
expired rows are removed lazily (or in bulk via purge_expired()).
"""

import json
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from database.connection import session_scope
from models.orm_cache_entry import CacheEntry
from utils.cache import ResultCache
from utils.logger import logger
from utils.sql_helpers import upsert_statement


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DatabaseResultCache(ResultCache):
    """
    Database-backed cache with per-entry TTL.

    Args:
        session_factory: Callable returning a new Session (defaults to the global engine)
        default_ttl_seconds: TTL used when set() is called without one
    """

    shared = True

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None,
                 default_ttl_seconds: int = 300):
        if session_factory is None:
            from models.base import create_session
            session_factory = create_session
        self._session_factory = session_factory
        self._ttl = default_ttl_seconds
        self._stats_lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        now = _utc_now()
        with session_scope(self._session_factory) as session:
            entry = session.get(CacheEntry, key)
            if entry is None:
                value, hit = None, False
            elif entry.expires_at <= now:
                session.delete(entry)
                value, hit = None, False
            else:
                value, hit = json.loads(entry.payload), True

        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        now = _utc_now()
        row = {
            "cache_key": key,
            "payload": json.dumps(value),
            "cached_at": now,
            "expires_at": now + timedelta(seconds=ttl)
        }
        with session_scope(self._session_factory) as session:
            session.execute(upsert_statement(
                session,
                CacheEntry,
                [row],
                conflict_columns=['cache_key'],
                update_columns=['payload', 'cached_at', 'expires_at']
            ))

    def delete(self, key: str) -> bool:
        with session_scope(self._session_factory) as session:
            result = session.execute(delete(CacheEntry).where(CacheEntry.cache_key == key))
            return (result.rowcount or 0) > 0

    def clear(self) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(delete(CacheEntry))
        with self._stats_lock:
            self._hits = 0
            self._misses = 0

    def purge_expired(self) -> int:
        """
        Delete every expired entry.

        Returns:
            Number of rows removed
        """
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(CacheEntry).where(CacheEntry.expires_at <= _utc_now())
            )
            removed = result.rowcount or 0

        if removed:
            logger.info(f"Purged {removed} expired cache entries")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        now = _utc_now()
        with session_scope(self._session_factory) as session:
            total_entries = session.execute(select(func.count()).select_from(CacheEntry)).scalar_one()
            valid_entries = session.execute(
                select(func.count()).select_from(CacheEntry).where(CacheEntry.expires_at > now)
            ).scalar_one()

        with self._stats_lock:
            hits, misses = self._hits, self._misses
        total = hits + misses
        return {
            "backend": "database",
            "hits": hits,
            "misses": misses,
            "total_entries": total_entries,
            "valid_entries": valid_entries,
            "hit_rate": (hits / total) * 100 if total else 0.0,
            "ttl_seconds": self._ttl
        }
