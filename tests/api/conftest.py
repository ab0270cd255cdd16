"""Pytest fixtures for API tests.

Provides a test client bound to an in-memory database and a frozen
clock, plus a registered caller with a brand.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.api.deps import get_clock
from src.api.main import app
from src.db.connection import get_db, set_sqlite_pragma
from src.db.models import Base, Brand, User
from tests.helpers import make_brand, make_user


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Creates all tables, yields a session, and cleans up after test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(test_db: Session, clock) -> Generator[TestClient, None, None]:
    """Create a TestClient with the database and clock dependencies overridden.

    The client is not entered as a context manager, so the startup hook
    does not touch the configured database.
    """

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def caller(test_db: Session, clock) -> User:
    return make_user(test_db, clock=clock)


@pytest.fixture
def caller_brand(test_db: Session, caller: User, clock) -> Brand:
    return make_brand(test_db, caller, clock=clock)


@pytest.fixture
def headers(caller: User) -> dict[str, str]:
    return {"X-User-Id": caller.id}
