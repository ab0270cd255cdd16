"""Database connection management for ReviewPulse.

Provides synchronous database access using SQLAlchemy. Supports SQLite for
development with PostgreSQL for production, plus the retried-transaction
helper that service operations use for atomic check-then-act sequences.

Usage:
    # Request-scoped (FastAPI Depends)
    from src.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())

    # Atomic check-then-act with replay on contention
    source = run_in_transaction(db, lambda: _create(db), operation="create_source")
"""

import logging
import os
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from src.db.models import Base
from src.errors.domain import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TRANSACTION_ATTEMPTS = 3


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. REVIEWPULSE_DB_PATH (converted to sqlite URL)
    3. sqlite file in the platform data directory
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("REVIEWPULSE_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import ensure_dirs_exist, get_default_db_path

    ensure_dirs_exist()
    return f"sqlite:///{get_default_db_path()}"


def build_engine(database_url: str, echo: bool = False):
    """Create an engine with SQLite pragmas applied on every connection."""
    is_sqlite = database_url.startswith("sqlite")
    new_engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=echo,
    )
    if is_sqlite:
        event.listen(new_engine, "connect", set_sqlite_pragma)
    return new_engine


def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - busy_timeout: Writers wait briefly for a competing writer instead of
      failing immediately with "database is locked".
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


# Engine creation
DATABASE_URL = get_database_url()

engine = build_engine(
    DATABASE_URL,
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for one request.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            due = SyncScheduler(db).find_sources_ready_for_sync()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Transactions


def _is_lock_contention(error: OperationalError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return "locked" in message or "deadlock" in message or "could not serialize" in message


def _is_unique_violation(error: IntegrityError) -> bool:
    orig = error.orig
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    message = str(orig if orig is not None else error).lower()
    return "unique" in message or "duplicate" in message


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    operation: str,
    attempts: int = DEFAULT_TRANSACTION_ATTEMPTS,
) -> T:
    """Run ``work`` and commit, replaying it when storage reports contention.

    ``work`` must read everything it decides on from ``db`` each time it is
    called; after a rollback every loaded instance is expired, so a replay
    observes the competing writer's committed state. Contention means an
    optimistic version check failed (StaleDataError), a uniqueness
    constraint rejected a racing insert (IntegrityError naming a unique
    constraint), or the database reported a lock conflict. Any other
    exception rolls back and propagates unchanged, domain errors and
    foreign-key or CHECK violations included.

    Args:
        db: Session whose transaction this call owns.
        work: Zero-argument callable performing reads and writes.
        operation: Name used in logs and in the conflict error.
        attempts: Maximum number of executions.

    Returns:
        Whatever ``work`` returned on the committed attempt.

    Raises:
        ConcurrentModificationError: Contention persisted through every attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except StaleDataError as e:
            db.rollback()
            logger.warning(
                "%s: concurrent modification on attempt %d/%d (%s)",
                operation, attempt, attempts, type(e).__name__,
            )
        except IntegrityError as e:
            db.rollback()
            if not _is_unique_violation(e):
                raise
            logger.warning(
                "%s: concurrent modification on attempt %d/%d (%s)",
                operation, attempt, attempts, type(e).__name__,
            )
        except OperationalError as e:
            db.rollback()
            if not _is_lock_contention(e):
                raise
            logger.warning(
                "%s: lock contention on attempt %d/%d", operation, attempt, attempts,
            )
        except Exception:
            db.rollback()
            raise
    raise ConcurrentModificationError(operation, attempts)


# Initialization functions


def init_db(bind: Any = None) -> None:
    """Create all database tables.

    Uses the Base.metadata from models.py to create all defined tables.
    Safe to call multiple times - will not recreate existing tables.

    Args:
        bind: Engine to use (defaults to the module engine).
    """
    Base.metadata.create_all(bind=bind or engine)


# Cleanup functions


def close_db() -> None:
    """Dispose of the engine's connection pool."""
    engine.dispose()
