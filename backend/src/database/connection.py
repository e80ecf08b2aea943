"""
Theme Park Crowd Tracker - Database Connection Management
Provides SQLAlchemy connection pooling and ORM session management.

- test_database_connection() checks the global engine with SELECT 1
- session_scope() wraps any session factory: commit on success, rollback on
  error (worker threads, scripts, tests)
- init_database() creates missing tables from the ORM metadata
"""

from contextlib import contextmanager
from sqlalchemy import create_engine, event, text
from sqlalchemy.pool import QueuePool
from sqlalchemy.engine import Engine, Connection, URL, make_url
from sqlalchemy.orm import Session
from typing import Callable, Generator, Optional

from utils.config import (
    DATABASE_URL, DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD,
    DB_POOL_SIZE, DB_POOL_MAX_OVERFLOW, DB_POOL_RECYCLE, DB_POOL_PRE_PING,
    config
)
from utils.logger import logger, log_database_error


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Let SQLAlchemy own BEGIN/SAVEPOINT on a pysqlite engine.

    pysqlite's implicit transaction handling breaks nested transactions, which
    the conditional sample insert relies on.
    """
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


class DatabaseConnection:
    """
    Manages database connections with connection pooling.

    Features:
    - Connection pooling (10 connections + 20 overflow) for server databases
    - Automatic connection recycling (every hour)
    - Health checks before connection use (pool_pre_ping)
    - DATABASE_URL override (SQLite for local runs and tests)
    """

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._engine: Engine = None

    def _connection_url(self) -> URL:
        url = self._url or DATABASE_URL
        if url:
            return make_url(url)

        # URL.create() keeps the password out of logs and reprs
        return URL.create(
            drivername="mysql+pymysql",
            username=DB_USER,
            password=DB_PASSWORD,
            host=DB_HOST,
            port=DB_PORT,
            database=DB_NAME,
            query={
                "charset": "utf8mb4",
                "init_command": "SET time_zone='+00:00'",  # Force UTC for all connections
            },
        )

    def get_engine(self) -> Engine:
        """
        Get or create the SQLAlchemy engine with connection pooling.

        Returns:
            SQLAlchemy Engine instance

        Raises:
            DatabaseConnectionError: If engine creation fails
        """
        if self._engine is None:
            try:
                connection_url = self._connection_url()

                if connection_url.get_backend_name() == "sqlite":
                    self._engine = enable_sqlite_savepoints(create_engine(
                        connection_url,
                        connect_args={"check_same_thread": False},
                        echo=False,
                    ))
                else:
                    self._engine = create_engine(
                        connection_url,
                        poolclass=QueuePool,
                        pool_size=DB_POOL_SIZE,  # 10 connections
                        max_overflow=DB_POOL_MAX_OVERFLOW,  # +20 overflow
                        pool_recycle=DB_POOL_RECYCLE,  # Recycle after 1 hour
                        pool_pre_ping=DB_POOL_PRE_PING,  # Health check before use
                        echo=False,  # Set to True for SQL logging in development
                        hide_parameters=True,  # Prevent password from appearing in logs
                    )

                logger.info("Database connection pool initialized", extra={
                    "backend": connection_url.get_backend_name(),
                    "host": connection_url.host,
                    "database": connection_url.database,
                    "pool_size": DB_POOL_SIZE,
                    "max_overflow": DB_POOL_MAX_OVERFLOW,
                    "environment": config.environment
                })

            except Exception as e:
                log_database_error(e, "Failed to create database engine")
                raise DatabaseConnectionError(f"Failed to create database engine: {e}") from e

        return self._engine

    @contextmanager
    def get_connection(self) -> Generator[Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            SQLAlchemy Connection object

        Example:
            >>> with db.get_connection() as conn:
            ...     result = conn.execute(text("SELECT * FROM parks"))
        """
        engine = self.get_engine()
        connection = engine.connect()
        try:
            yield connection
            connection.commit()
        except Exception as e:
            connection.rollback()
            log_database_error(e, "Transaction failed, rolled back")
            raise
        finally:
            connection.close()

    def test_connection(self) -> bool:
        """
        Test database connectivity.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            with self.get_connection() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection test successful")
            return True
        except Exception as e:
            logger.error("Database connection test failed", extra={
                "error": str(e)
            })
            return False

    def close(self):
        """Close all connections in the pool."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Database connection pool closed")


class DatabaseConnectionError(Exception):
    """Raised when database connection fails."""
    pass


# Global database connection instance
db = DatabaseConnection()


def test_database_connection() -> bool:
    """Test database connectivity."""
    return db.test_connection()


# === ORM Session Management ===

@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """
    Transactional scope around a session built by any factory.

    Commits on success, rolls back and logs on error, always closes.
    Each worker thread must open its own scope; sessions are not thread-safe.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        log_database_error(e, "ORM transaction failed, rolled back")
        raise
    finally:
        session.close()


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create any missing tables from the ORM metadata.

    Existing tables are left untouched; there is no migration support.
    """
    from models import Base

    engine = engine or db.get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database schema ensured", extra={
        "tables": sorted(Base.metadata.tables.keys())
    })
