"""Append-only user activity ledger.

Every state-changing user action appends one UserActivityLog row. Rows are
never updated or deleted (the model's mapper events reject it), so the
ledger can be read concurrently and replayed for metrics.

Methods do NOT call db.commit(); entries are written in the caller's
transaction so that an action and its ledger entry land together.

Example:
    ledger = ActivityService(db)
    ledger.log_login(user.id)
    page = ledger.get_activity(user.id, page=0, size=20)
"""

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.config import PaginationConfig, get_config
from src.db.models import ActivityType, User, UserActivityLog
from src.db.visibility import active_users
from src.errors import NotFoundError, ValidationError
from src.utils.time_window import Clock, ensure_aware, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ActivityPage:
    """One page of ledger entries, newest first."""

    items: list[UserActivityLog]
    page: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.size) if self.total_items else 0

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0

    def pagination(self) -> dict[str, Any]:
        return {
            "currentPage": self.page,
            "pageSize": self.size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrevious": self.has_previous,
        }


def _coerce_activity_type(activity_type: ActivityType | str) -> ActivityType:
    try:
        return ActivityType(activity_type)
    except ValueError as e:
        raise ValidationError(f"Unknown activity type '{activity_type}'") from e


class ActivityService:
    """Writes to and reads from the activity ledger."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utc_now,
        pagination: PaginationConfig | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.pagination = pagination or get_config().pagination

    def _require_user(self, user_id: str) -> User:
        user = self.db.scalars(active_users().where(User.id == user_id)).first()
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def log(
        self,
        user_id: str,
        activity_type: ActivityType | str,
        occurred_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UserActivityLog:
        """Append one ledger entry.

        Args:
            user_id: Acting user; must exist and not be soft-deleted.
            activity_type: ActivityType member or its value.
            occurred_at: Instant of the action (defaults to the clock).
            metadata: JSON-serialisable context.

        Returns:
            The flushed UserActivityLog row.

        Raises:
            NotFoundError: Unknown or deleted user.
            ValidationError: Unknown activity type or naive timestamp.
        """
        kind = _coerce_activity_type(activity_type)
        self._require_user(user_id)
        when = ensure_aware(occurred_at, "occurred_at") if occurred_at else self.clock()

        entry = UserActivityLog(
            user_id=user_id,
            activity_type=kind.value,
            occurred_at=when,
            metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        )
        self.db.add(entry)
        self.db.flush()
        logger.debug("Logged %s for user %s", kind.value, user_id)
        return entry

    # Convenience emitters

    def log_registration(self, user_id: str, email: str | None = None) -> UserActivityLog:
        return self.log(
            user_id, ActivityType.USER_REGISTERED, metadata={"email": email} if email else None
        )

    def log_login(self, user_id: str) -> UserActivityLog:
        return self.log(user_id, ActivityType.LOGIN)

    def log_first_source_configured(
        self, user_id: str, brand_id: str, source_id: str, source_type: str
    ) -> UserActivityLog:
        return self.log(
            user_id,
            ActivityType.FIRST_SOURCE_CONFIGURED_SUCCESSFULLY,
            metadata={"brandId": brand_id, "sourceId": source_id, "sourceType": source_type},
        )

    def log_source_added(
        self, user_id: str, brand_id: str, source_id: str, source_type: str
    ) -> UserActivityLog:
        return self.log(
            user_id,
            ActivityType.SOURCE_ADDED,
            metadata={"brandId": brand_id, "sourceId": source_id, "sourceType": source_type},
        )

    def log_source_deleted(self, user_id: str, brand_id: str, source_id: str) -> UserActivityLog:
        return self.log(
            user_id,
            ActivityType.SOURCE_DELETED,
            metadata={"brandId": brand_id, "sourceId": source_id},
        )

    def log_sentiment_correction(
        self, user_id: str, review_id: str, old_sentiment: str, new_sentiment: str
    ) -> UserActivityLog:
        return self.log(
            user_id,
            ActivityType.SENTIMENT_CORRECTED,
            metadata={
                "reviewId": review_id,
                "oldSentiment": old_sentiment,
                "newSentiment": new_sentiment,
            },
        )

    def log_manual_refresh_triggered(
        self, user_id: str, brand_id: str, source_ids: list[str]
    ) -> UserActivityLog:
        return self.log(
            user_id,
            ActivityType.MANUAL_REFRESH_TRIGGERED,
            metadata={"brandId": brand_id, "sourceIds": source_ids},
        )

    # Reads

    def get_activity(self, user_id: str, page: int = 0, size: int | None = None) -> ActivityPage:
        """Return one page of a user's entries, newest first.

        Raises:
            ValidationError: Negative page or size below 1.
            NotFoundError: Unknown or deleted user.
        """
        if page < 0:
            raise ValidationError(f"Page must be >= 0, got {page}")
        size = self.pagination.default_page_size if size is None else size
        if size < 1:
            raise ValidationError(f"Page size must be >= 1, got {size}")
        size = min(size, self.pagination.max_page_size)
        self._require_user(user_id)

        total = self.db.scalar(
            select(func.count(UserActivityLog.id)).where(UserActivityLog.user_id == user_id)
        ) or 0
        items = self.db.scalars(
            select(UserActivityLog)
            .where(UserActivityLog.user_id == user_id)
            .order_by(UserActivityLog.occurred_at.desc(), UserActivityLog.id.desc())
            .offset(page * size)
            .limit(size)
        ).all()
        return ActivityPage(items=list(items), page=page, size=size, total_items=total)

    def first_occurrence(self, user_id: str, activity_type: ActivityType) -> datetime | None:
        """Instant of the earliest entry of a type, or None."""
        return self.db.scalar(
            select(func.min(UserActivityLog.occurred_at)).where(
                UserActivityLog.user_id == user_id,
                UserActivityLog.activity_type == activity_type.value,
            )
        )

    def count_between(
        self,
        user_id: str,
        activity_type: ActivityType,
        start: datetime,
        end: datetime,
    ) -> int:
        """Entries of a type in the closed interval [start, end]."""
        return self.db.scalar(
            select(func.count(UserActivityLog.id)).where(
                UserActivityLog.user_id == user_id,
                UserActivityLog.activity_type == activity_type.value,
                UserActivityLog.occurred_at >= start,
                UserActivityLog.occurred_at <= end,
            )
        ) or 0

    def count_of_type(self, user_id: str, activity_type: ActivityType) -> int:
        return self.db.scalar(
            select(func.count(UserActivityLog.id)).where(
                UserActivityLog.user_id == user_id,
                UserActivityLog.activity_type == activity_type.value,
            )
        ) or 0
