"""
Pytest configuration and fixtures.

Fixtures:
- test_db: database session; every test runs inside a transaction that is rolled back
- api_client: calls API handlers as a logged-in user
- tenant / admin_user: the default tenant with its seeded reference data and an admin
"""

from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

# In-memory database for the application engine as well
os.environ["DB_PATH"] = ":memory:"

# Imported after the environment is set
from backend.app import main  # noqa: E402,F401
from backend.app.models.base import Base  # noqa: E402


@pytest.fixture(scope="session")
def test_db_engine():
    """In-memory SQLite engine shared by the whole test session."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite handles BEGIN/SAVEPOINT itself unless told otherwise
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db(test_db_engine) -> Generator[Session, None, None]:
    """Session bound to an outer transaction that is rolled back after the test.

    `commit()` inside the test only releases a savepoint.
    """
    connection = test_db_engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_get_session(test_db, monkeypatch):
    """Make every `get_session()` in the backend hand out the test session."""

    @contextmanager
    def get_test_session():
        try:
            yield test_db
            test_db.commit()
        except Exception:
            test_db.rollback()
            raise

    for name, module in list(sys.modules.items()):
        if name.startswith("backend.app") and hasattr(module, "get_session"):
            monkeypatch.setattr(module, "get_session", get_test_session)

    monkeypatch.setattr("backend.app.core.db.engine", test_db.bind)


@pytest.fixture(autouse=True)
def no_telegram(monkeypatch):
    """Notifications never leave the test process."""
    from backend.app.core.config import settings

    monkeypatch.setattr(settings, "telegram_bot_token", None)
    monkeypatch.setattr(settings, "telegram_chat_id", None)


@pytest.fixture
def tenant(test_db):
    from tests.utils.factories import create_test_tenant

    tenant = create_test_tenant(test_db, seed=True)
    test_db.commit()
    return tenant


@pytest.fixture
def admin_user(test_db, tenant):
    from tests.utils.factories import create_test_user

    user = create_test_user(test_db, tenant, username="admin", role="admin")
    test_db.commit()
    return user


@pytest.fixture
def api_client(admin_user):
    """Client calling the API handlers as the admin user."""
    from tests.utils.test_client import APIClient

    return APIClient(admin_user.username)
