"""
Theme Park Crowd Tracker - Structured Logging
Provides JSON-formatted logging for CloudWatch Logs Insights queries.
"""

import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

from .config import LOG_LEVEL, config


def setup_logger(name: str = __name__) -> logging.Logger:
    """
    Configure structured JSON logger for CloudWatch integration.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        Configured logger instance

    Example:
        >>> logger = setup_logger(__name__)
        >>> logger.info("Sampling completed", extra={
        ...     "parks_processed": 85,
        ...     "new_samples": 1247
        ... })
    """
    logger = logging.getLogger(name)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S'
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


# Global logger instance
logger = setup_logger('crowd_tracker')


def log_collection_start(park_count: Optional[int] = None, batch_size: Optional[int] = None):
    """Log the start of a queue-time sampling cycle."""
    logger.info("Queue time sampling started", extra={
        "event_type": "collection_start",
        "park_count": park_count,
        "batch_size": batch_size,
        "environment": config.environment
    })


def log_collection_complete(duration_seconds: float, parks_processed: int, parks_failed: int,
                            new_samples: int, skipped_duplicates: int):
    """Log successful sampling cycle completion."""
    logger.info("Queue time sampling completed", extra={
        "event_type": "collection_complete",
        "duration_seconds": duration_seconds,
        "parks_processed": parks_processed,
        "parks_failed": parks_failed,
        "new_samples": new_samples,
        "skipped_duplicates": skipped_duplicates
    })


def log_collection_error(error: Exception, park_id: int = None):
    """Log a per-park sampling error with context."""
    logger.error("Queue time sampling failed for park", extra={
        "event_type": "collection_error",
        "error_type": type(error).__name__,
        "error_message": str(error),
        "park_id": park_id
    })


def log_catalog_sync_start(source_url: str):
    """Log the start of a catalog synchronization."""
    logger.info("Catalog sync started", extra={
        "event_type": "catalog_sync_start",
        "source_url": source_url,
        "environment": config.environment
    })


def log_catalog_sync_complete(duration_seconds: float, groups_seen: int, parks_seen: int,
                              groups_written: int, parks_written: int):
    """Log successful catalog synchronization."""
    logger.info("Catalog sync completed", extra={
        "event_type": "catalog_sync_complete",
        "duration_seconds": duration_seconds,
        "groups_seen": groups_seen,
        "parks_seen": parks_seen,
        "groups_written": groups_written,
        "parks_written": parks_written
    })


def log_catalog_sync_error(error: Exception):
    """Log catalog synchronization failure."""
    logger.error("Catalog sync failed", extra={
        "event_type": "catalog_sync_error",
        "error_type": type(error).__name__,
        "error_message": str(error)
    }, exc_info=True)


def log_job_skipped(job_name: str):
    """Log a scheduler trigger ignored because the job is already running."""
    logger.warning("Job already running, trigger skipped", extra={
        "event_type": "job_skipped",
        "job_name": job_name
    })


def log_crowd_level_fallback(park_id: Optional[int], reason: str, error: Exception = None):
    """Log a crowd level calculation that degraded to the default result."""
    logger.warning("Crowd level fell back to default", extra={
        "event_type": "crowd_level_fallback",
        "park_id": park_id,
        "reason": reason,
        "error_type": type(error).__name__ if error else None,
        "error_message": str(error) if error else None
    })


def log_database_error(error: Exception, query_context: str = None):
    """Log database error with context."""
    logger.error("Database error", extra={
        "event_type": "database_error",
        "error_type": type(error).__name__,
        "error_message": str(error),
        "query_context": query_context
    }, exc_info=True)
