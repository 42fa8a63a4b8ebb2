"""
SQLAlchemy connection setup for the Robyn backend.

A sync engine + sessionmaker on SQLite. Each API call runs inside one `get_session()` block,
which is the unit of work: commit on success, rollback on error.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

from .config import settings
from .audit_service import register_audit_listeners
from ..models.base import Base
from .. import models  # noqa: F401

# Make sure the database folder exists
db_path = Path(settings.db_path)
if settings.db_path != ":memory:" and db_path.parent != Path("."):
    db_path.parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    settings.sqlalchemy_database_uri,
    echo=settings.debug,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)


# SQLite ships with foreign keys disabled
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

register_audit_listeners()


def init_db() -> None:
    """Create the tables if missing.

    Schema changes are applied by recreating from metadata; there are no migrations.
    """

    Base.metadata.create_all(bind=engine)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context manager yielding a SQLAlchemy Session."""

    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
