"""Database engine configuration for SQLite.

This module configures the SQLite database engine with settings suited to
a web application: WAL mode for concurrent access and foreign key
enforcement for data integrity.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Allows concurrent readers while writing.
      Batch attendance commits write while other requests read the roster,
      so readers must not be blocked by a rollback journal.

    - **Foreign Keys**: Disabled by default in SQLite. Enabled so that an
      attendance fact always references an existing guest and event.

    - **check_same_thread=False**: Required for FastAPI. The record store
      opens sessions from request handlers and background jobs that may run
      on different threads.
"""

from sqlalchemy import event as sa_event
from sqlmodel import SQLModel, create_engine

from app.core.config import settings

connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Register table metadata before create_all
    import app.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
