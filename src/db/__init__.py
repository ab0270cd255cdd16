"""Database module for ReviewPulse state management and persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
    run_in_transaction,
)
from src.db.models import (
    ActivityType,
    AuthMethod,
    Brand,
    ChangeReason,
    JobStatus,
    JobType,
    PlanType,
    Review,
    ReviewSource,
    Sentiment,
    SentimentChange,
    SourceType,
    SyncJob,
    SyncStatus,
    User,
    UserActivityLog,
)

__all__ = [
    # Models
    "User",
    "Brand",
    "ReviewSource",
    "Review",
    "SyncJob",
    "SentimentChange",
    "UserActivityLog",
    # Enums
    "PlanType",
    "SourceType",
    "AuthMethod",
    "SyncStatus",
    "JobType",
    "JobStatus",
    "Sentiment",
    "ChangeReason",
    "ActivityType",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
    "run_in_transaction",
]
