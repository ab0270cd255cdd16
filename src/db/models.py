"""SQLAlchemy ORM models for the ReviewPulse state database.

This module defines the data model for brands, review sources, reviews,
the append-only sentiment audit trail and the append-only user activity
ledger. Uses SQLAlchemy 2.0 style with Mapped and mapped_column.

Timestamps are timezone-aware UTC datetimes on the Python side; the
UTCDateTime decorator stores them as naive UTC so SQLite and PostgreSQL
compare them identically.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.types import TypeDecorator


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Aware-UTC datetime stored as naive UTC.

    Binding a naive datetime is rejected rather than guessed at.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r} cannot be stored; attach a timezone")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Enums matching the database schema constraints


class PlanType(str, Enum):
    """Subscription tiers."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"


class SourceType(str, Enum):
    """External review platforms."""

    GOOGLE = "GOOGLE"
    FACEBOOK = "FACEBOOK"
    TRUSTPILOT = "TRUSTPILOT"


class AuthMethod(str, Enum):
    """How reviews are obtained from the platform."""

    API = "API"
    SCRAPING = "SCRAPING"


class SyncStatus(str, Enum):
    """Outcome of the most recent sync for a source."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class JobType(str, Enum):
    """What started a sync job."""

    INITIAL = "INITIAL"
    SCHEDULED = "SCHEDULED"
    MANUAL = "MANUAL"


class JobStatus(str, Enum):
    """Lifecycle of a sync job; COMPLETED and FAILED are terminal."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Sentiment(str, Enum):
    """Sentiment labels for reviews."""

    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


class ChangeReason(str, Enum):
    """Why a sentiment value changed.

    AI_INITIAL and REPROCESSING are machine assignments (no actor);
    USER_CORRECTION is a human correction (actor required).
    """

    AI_INITIAL = "AI_INITIAL"
    USER_CORRECTION = "USER_CORRECTION"
    REPROCESSING = "REPROCESSING"


class ActivityType(str, Enum):
    """User actions recorded in the activity ledger."""

    USER_REGISTERED = "USER_REGISTERED"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    VIEW_DASHBOARD = "VIEW_DASHBOARD"
    FILTER_APPLIED = "FILTER_APPLIED"
    SENTIMENT_CORRECTED = "SENTIMENT_CORRECTED"
    SOURCE_CONFIGURED = "SOURCE_CONFIGURED"
    SOURCE_ADDED = "SOURCE_ADDED"
    SOURCE_DELETED = "SOURCE_DELETED"
    MANUAL_REFRESH_TRIGGERED = "MANUAL_REFRESH_TRIGGERED"
    FIRST_SOURCE_CONFIGURED_SUCCESSFULLY = "FIRST_SOURCE_CONFIGURED_SUCCESSFULLY"


def _enum_check(column: str, enum_cls: type[Enum], name: str) -> CheckConstraint:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return CheckConstraint(f"{column} IN ({values})", name=name)


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class User(Base):
    """Account owning at most one brand.

    Authentication fields live with the identity provider; this row carries
    only what quota enforcement and the activity ledger need.

    Attributes:
        id: UUID primary key
        email: Unique login email
        plan_type: Subscription tier (FREE, PREMIUM)
        max_sources_allowed: Active review sources the plan permits (>= 1)
        created_at: Registration instant
        deleted_at: Soft-delete marker
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    plan_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlanType.FREE.value
    )
    max_sources_allowed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    brands: Mapped[list["Brand"]] = relationship("Brand", back_populates="owner")

    __table_args__ = (
        CheckConstraint("max_sources_allowed >= 1", name="ck_users_max_sources"),
        _enum_check("plan_type", PlanType, "ck_users_plan_type"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, email={self.email!r}, plan={self.plan_type!r})>"


class Brand(Base):
    """Brand owned by a user; the tenant boundary for sources and reviews.

    The version column serialises writers: every flush that updates a brand
    row checks the version it read. Source creation and manual refresh bump
    it, so two concurrent check-then-act sequences on one brand cannot both
    commit.

    Attributes:
        id: UUID primary key
        user_id: Owning user (one non-deleted brand per user)
        name: Display name
        last_manual_refresh_at: Instant of the last manual refresh, if any
        first_source_configured_at: Set once, when the first source is created
        version: Optimistic-lock counter
        created_at / updated_at: Timestamps
        deleted_at: Soft-delete marker
    """

    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_manual_refresh_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    first_source_configured_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    owner: Mapped["User"] = relationship("User", back_populates="brands")
    sources: Mapped[list["ReviewSource"]] = relationship(
        "ReviewSource", back_populates="brand"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_brands_owner_active",
            "user_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_brands_last_manual_refresh", "last_manual_refresh_at"),
    )

    def touch(self, now: datetime) -> None:
        """Mark the row changed so the next flush bumps its version.

        The update is unconditional: an unchanged timestamp (a frozen clock)
        still issues UPDATE ... WHERE version = :read_version.
        """
        self.updated_at = now
        flag_modified(self, "updated_at")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Brand(id={self.id!r}, name={self.name!r}, user_id={self.user_id!r})>"


class ReviewSource(Base):
    """A configured review profile on an external platform.

    Attributes:
        id: UUID primary key
        brand_id: Owning brand
        source_type: Platform (GOOGLE, FACEBOOK, TRUSTPILOT)
        external_profile_id: Platform-side profile identifier
        profile_url: Public profile URL
        auth_method: API or SCRAPING
        is_active: False pauses scheduled syncs
        credentials_encrypted: Opaque AES-GCM envelope, never returned by the API
        last_sync_at / last_sync_status / last_sync_error: Last outcome
        next_scheduled_sync_at: Next daily sync instant
        created_at / updated_at: Timestamps
        deleted_at: Soft-delete marker
    """

    __tablename__ = "review_sources"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    brand_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False
    )
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    external_profile_id: Mapped[str] = mapped_column(String(255), nullable=False)
    profile_url: Mapped[str] = mapped_column(Text, nullable=False)
    auth_method: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    credentials_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Sync state
    last_sync_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_sync_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_scheduled_sync_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    brand: Mapped["Brand"] = relationship("Brand", back_populates="sources")
    reviews: Mapped[list["Review"]] = relationship("Review", back_populates="source")

    __table_args__ = (
        # Duplicate-detection key, enforced by storage among non-deleted rows
        Index(
            "uq_review_sources_active_key",
            "brand_id",
            "source_type",
            "external_profile_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_review_sources_brand_id", "brand_id"),
        Index("idx_review_sources_next_sync", "next_scheduled_sync_at"),
        _enum_check("source_type", SourceType, "ck_review_sources_source_type"),
        _enum_check("auth_method", AuthMethod, "ck_review_sources_auth_method"),
        CheckConstraint(
            "last_sync_status IS NULL OR last_sync_status IN ('SUCCESS', 'FAILED')",
            name="ck_review_sources_sync_status",
        ),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return (
            f"<ReviewSource(id={self.id!r}, brand_id={self.brand_id!r}, "
            f"type={self.source_type!r}, external_id={self.external_profile_id!r})>"
        )


class Review(Base):
    """A review ingested from a source, with its current sentiment.

    The version column protects sentiment updates: concurrent corrections
    serialise so that each audit row records the value it replaced.

    Attributes:
        id: UUID primary key
        source_id: Owning review source
        external_review_id: Platform-side review id (unique per source)
        content / content_hash: Text and its normalised SHA-256
        author_name: Display name of the reviewer
        rating: Star rating 1-5
        sentiment: Current sentiment label
        sentiment_confidence: Model confidence for machine labels
        published_at: When the review was posted on the platform
        version: Optimistic-lock counter
        created_at / updated_at: Timestamps
        deleted_at: Soft-delete marker
    """

    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("review_sources.id", ondelete="CASCADE"), nullable=False
    )
    external_review_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    author_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    sentiment: Mapped[str] = mapped_column(String(20), nullable=False)
    sentiment_confidence: Mapped[float | None] = mapped_column(nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    source: Mapped["ReviewSource"] = relationship("ReviewSource", back_populates="reviews")
    sentiment_changes: Mapped[list["SentimentChange"]] = relationship(
        "SentimentChange", back_populates="review"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("source_id", "external_review_id", name="uq_reviews_source_external"),
        Index("idx_reviews_source_id", "source_id"),
        Index("idx_reviews_content_hash", "source_id", "content_hash"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),
        _enum_check("sentiment", Sentiment, "ck_reviews_sentiment"),
    )

    def __repr__(self) -> str:
        return f"<Review(id={self.id!r}, source_id={self.source_id!r}, sentiment={self.sentiment!r})>"


class SyncJob(Base):
    """One fetch of a review source, from queueing to outcome.

    Created PENDING by source creation (INITIAL), the daily sweep
    (SCHEDULED) or a manual refresh (MANUAL). Unlike the audit tables,
    rows move through their status; they are never deleted.

    Attributes:
        id: Autoincrement primary key
        source_id: Source being synced
        job_type: INITIAL, SCHEDULED or MANUAL
        status: PENDING, IN_PROGRESS, COMPLETED or FAILED
        reviews_fetched: Reviews returned by the platform
        reviews_new: Reviews stored for the first time
        error_message: Failure text for FAILED jobs
        created_at / started_at / completed_at: Lifecycle instants
    """

    __tablename__ = "sync_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("review_sources.id", ondelete="CASCADE"), nullable=False
    )
    job_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value
    )
    reviews_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviews_new: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    source: Mapped["ReviewSource"] = relationship("ReviewSource")

    __table_args__ = (
        Index("idx_sync_jobs_source", "source_id", "created_at"),
        Index("idx_sync_jobs_status", "status", "started_at"),
        _enum_check("job_type", JobType, "ck_sync_jobs_job_type"),
        _enum_check("status", JobStatus, "ck_sync_jobs_status"),
        CheckConstraint(
            "reviews_fetched >= 0 AND reviews_new >= 0", name="ck_sync_jobs_counts"
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED.value, JobStatus.FAILED.value)

    def __repr__(self) -> str:
        return (
            f"<SyncJob(id={self.id!r}, source_id={self.source_id!r}, "
            f"type={self.job_type!r}, status={self.status!r})>"
        )


class SentimentChange(Base):
    """Immutable record of one sentiment transition on a review.

    Insert-only: flushes that would update or delete a row raise.
    Integer keys preserve insertion order for same-instant rows.

    Attributes:
        id: Autoincrement primary key
        review_id: Review whose sentiment changed
        old_sentiment / new_sentiment: Transition values
        change_reason: AI_INITIAL, USER_CORRECTION or REPROCESSING
        changed_by_user_id: Actor for USER_CORRECTION, None for machine changes
        changed_at: Instant of the change
    """

    __tablename__ = "sentiment_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    review_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False
    )
    old_sentiment: Mapped[str] = mapped_column(String(20), nullable=False)
    new_sentiment: Mapped[str] = mapped_column(String(20), nullable=False)
    change_reason: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by_user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    changed_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )

    review: Mapped["Review"] = relationship("Review", back_populates="sentiment_changes")
    changed_by: Mapped[Optional["User"]] = relationship("User")

    __table_args__ = (
        Index("idx_sentiment_changes_review", "review_id", "changed_at"),
        Index("idx_sentiment_changes_reason", "change_reason", "changed_at"),
        _enum_check("old_sentiment", Sentiment, "ck_sentiment_changes_old"),
        _enum_check("new_sentiment", Sentiment, "ck_sentiment_changes_new"),
        _enum_check("change_reason", ChangeReason, "ck_sentiment_changes_reason"),
    )

    def __repr__(self) -> str:
        return (
            f"<SentimentChange(id={self.id!r}, review_id={self.review_id!r}, "
            f"{self.old_sentiment}->{self.new_sentiment}, reason={self.change_reason!r})>"
        )


class UserActivityLog(Base):
    """Immutable entry in the user activity ledger.

    Insert-only: flushes that would update or delete a row raise.

    Attributes:
        id: Autoincrement primary key
        user_id: Acting user
        activity_type: ActivityType value
        occurred_at: When the action happened
        metadata_json: JSON object with free-form context
    """

    __tablename__ = "user_activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utc_now
    )
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship("User")

    __table_args__ = (
        Index("idx_user_activity_user", "user_id", "occurred_at"),
        Index("idx_user_activity_type", "activity_type", "occurred_at"),
        _enum_check("activity_type", ActivityType, "ck_user_activity_type"),
    )

    @property
    def activity_metadata(self) -> dict[str, Any]:
        """Decoded metadata (empty dict when none was recorded)."""
        if not self.metadata_json:
            return {}
        return json.loads(self.metadata_json)

    def __repr__(self) -> str:
        return (
            f"<UserActivityLog(id={self.id!r}, user_id={self.user_id!r}, "
            f"type={self.activity_type!r})>"
        )


class AppendOnlyViolation(RuntimeError):
    """Raised when code attempts to mutate an append-only row."""


def _reject_mutation(mapper: Any, connection: Any, target: Any) -> None:
    raise AppendOnlyViolation(
        f"{type(target).__name__} rows are append-only and cannot be modified or deleted"
    )


for _append_only in (SentimentChange, UserActivityLog):
    event.listen(_append_only, "before_update", _reject_mutation)
    event.listen(_append_only, "before_delete", _reject_mutation)
