#!/usr/bin/env python3
"""
Theme Park Crowd Tracker - Database Initialization Script
Creates any missing tables. Existing tables are not altered.

Usage:
    python -m scripts.init_db
"""

import sys
from pathlib import Path

# Add src to path
backend_src = Path(__file__).parent.parent
sys.path.insert(0, str(backend_src.absolute()))

from sqlalchemy.exc import SQLAlchemyError

from utils.logger import logger
from database.connection import DatabaseConnectionError, init_database, test_database_connection


def main():
    """Main entry point."""
    try:
        init_database()
    except (DatabaseConnectionError, SQLAlchemyError) as e:
        logger.error(f"Cannot initialize database: {e}")
        sys.exit(1)

    if not test_database_connection():
        sys.exit(1)

    logger.info("Database initialization complete")


if __name__ == '__main__':
    main()
