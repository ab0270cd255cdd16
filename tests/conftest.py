"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory database session (single connection, StaticPool)
- File-backed database with two independent sessions for race tests
- A controllable clock and default configuration
"""

import os

# src.db.connection builds its engine at import time; keep it off disk.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Generator
from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import ReviewPulseConfig, get_config
from src.db.connection import build_engine, set_sqlite_pragma
from src.db.models import Base
from tests.helpers import FixedClock

# Tuesday 10 March 2026, 09:00 UTC (10:00 in Paris, before the DST switch)
T0 = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


# ============================================================================
# Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path, monkeypatch):
    """Keep config discovery and the key file away from the developer's machine."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("REVIEWPULSE_DATA_DIR", str(tmp_path / "data"))
    for key in list(os.environ):
        if key.startswith("REVIEWPULSE_") and key != "REVIEWPULSE_DATA_DIR":
            monkeypatch.delenv(key, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


# ============================================================================
# Time and configuration
# ============================================================================


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at T0; tests move it with advance()."""
    return FixedClock(T0)


@pytest.fixture
def config() -> ReviewPulseConfig:
    """Default configuration (FREE=1 source, 24h cooldown, 03:00 Europe/Paris)."""
    return ReviewPulseConfig()


# ============================================================================
# Database fixtures
# ============================================================================


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """In-memory SQLite session with foreign keys enforced."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def file_sessions(tmp_path) -> Generator[sessionmaker, None, None]:
    """Session factory on a file-backed database.

    Sessions from this factory use separate connections, so one can commit
    while another holds stale state, which is what the race tests need.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()
