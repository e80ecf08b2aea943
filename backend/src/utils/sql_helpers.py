"""
Theme Park Crowd Tracker - Centralized SQL Helpers

Dialect-aware building blocks shared by the repositories:

- upsert_statement(): batch INSERT ... ON DUPLICATE KEY UPDATE (MySQL) or
  INSERT ... ON CONFLICT DO UPDATE (SQLite/PostgreSQL)
- hour_bucket(): expression truncating a timestamp to its hour
- percentile_cont(): interpolated percentile matching PERCENTILE_CONT

Production runs on MySQL; the SQLite branches keep the unit tests fast.
"""

import math
from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy import func
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_name(session: Session) -> str:
    """Name of the SQL dialect bound to a session ('mysql', 'sqlite', ...)."""
    return session.get_bind().dialect.name


def upsert_statement(session: Session, model, rows: List[Dict[str, Any]],
                     conflict_columns: Sequence[str], update_columns: Sequence[str]):
    """
    Build a batch upsert for the session's dialect.

    Args:
        session: Session whose bind decides the dialect
        model: ORM model class (target table)
        rows: Column dictionaries, one per row
        conflict_columns: Columns of the unique key the upsert resolves on
            (ignored by MySQL, which uses every unique key)
        update_columns: Columns overwritten when the row already exists

    Returns:
        Executable insert statement
    """
    name = dialect_name(session)
    table = model.__table__

    if name == 'mysql':
        stmt = mysql.insert(table).values(rows)
        return stmt.on_duplicate_key_update(
            {col: stmt.inserted[col] for col in update_columns}
        )

    if name == 'postgresql':
        stmt = postgresql.insert(table).values(rows)
    elif name == 'sqlite':
        stmt = sqlite.insert(table).values(rows)
    else:
        raise NotImplementedError(f"Upsert not supported for dialect '{name}'")

    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={col: stmt.excluded[col] for col in update_columns}
    )


def hour_bucket(session: Session, column):
    """
    SQL expression truncating a timestamp column to the start of its hour.

    Args:
        session: Session whose bind decides the dialect
        column: Timestamp column expression

    Returns:
        Expression usable in SELECT and GROUP BY
    """
    name = dialect_name(session)
    if name == 'mysql':
        return func.date_format(column, '%Y-%m-%d %H:00:00')
    if name == 'sqlite':
        return func.strftime('%Y-%m-%d %H:00:00', column)
    if name == 'postgresql':
        return func.date_trunc('hour', column)
    raise NotImplementedError(f"Hour bucketing not supported for dialect '{name}'")


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    """Yield consecutive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def percentile_cont(values: Iterable[float], fraction: float) -> float:
    """
    Continuous percentile with linear interpolation between neighbours.

    Same definition as SQL PERCENTILE_CONT(fraction) WITHIN GROUP (ORDER BY x):
    position = fraction * (n - 1) over the sorted values.

    Args:
        values: Numbers to rank
        fraction: Percentile as a fraction in [0, 1]

    Returns:
        Interpolated value

    Raises:
        ValueError: If values is empty or fraction is outside [0, 1]
    """
    ordered = sorted(float(v) for v in values)
    if not ordered:
        raise ValueError("percentile_cont() requires at least one value")
    if not 0.0 <= fraction <= 1.0:
        raise ValueError(f"fraction must be within [0, 1], got {fraction}")

    position = fraction * (len(ordered) - 1)
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return ordered[lower]
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (position - lower)
