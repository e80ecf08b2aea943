"""
Theme Park Crowd Tracker - Park Group Repository
Provides data access layer for the park_groups table using SQLAlchemy ORM.
"""

from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.orm_park_group import ParkGroup
from utils.config import CATALOG_UPSERT_CHUNK_SIZE
from utils.logger import logger
from utils.sql_helpers import chunked, upsert_statement


class ParkGroupRepository:
    """
    Repository for park group operations.

    Implements:
    - Batch upsert by Queue-Times external ID
    - External ID -> surrogate ID lookup map (single query)
    """

    def __init__(self, session: Session):
        """
        Initialize repository with SQLAlchemy session.

        Args:
            session: SQLAlchemy session object
        """
        self.session = session

    def get_names_by_queue_times_id(self) -> Dict[int, str]:
        """
        Current name of every stored group, keyed by external ID.

        Used to diff the upstream document so unchanged groups are not rewritten.
        """
        rows = self.session.execute(
            select(ParkGroup.queue_times_id, ParkGroup.name)
        ).all()
        return {row.queue_times_id: row.name for row in rows}

    def get_id_map(self) -> Dict[int, int]:
        """
        Map of external ID -> group_id for all stored groups.

        Returns:
            Dictionary of queue_times_id to group_id
        """
        rows = self.session.execute(
            select(ParkGroup.queue_times_id, ParkGroup.group_id)
        ).all()
        return {row.queue_times_id: row.group_id for row in rows}

    def bulk_upsert(self, groups: List[Dict[str, Any]],
                    chunk_size: int = CATALOG_UPSERT_CHUNK_SIZE) -> int:
        """
        Insert or update groups in batches.

        Args:
            groups: Dicts with queue_times_id and name
            chunk_size: Rows per INSERT statement

        Returns:
            Number of rows sent to the database
        """
        if not groups:
            return 0

        for chunk in chunked(groups, chunk_size):
            stmt = upsert_statement(
                self.session,
                ParkGroup,
                list(chunk),
                conflict_columns=['queue_times_id'],
                update_columns=['name']
            )
            self.session.execute(stmt)

        logger.debug(f"Upserted {len(groups)} park groups")
        return len(groups)
