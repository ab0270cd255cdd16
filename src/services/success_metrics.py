"""Success metrics derived from the activity ledger.

All computations are pure reads over append-only data: repeating them has
no side effects, and users without qualifying events yield False / None
instead of errors.

Metrics:
- time-to-value: registration -> first successfully configured source
- activation: first source within the activation window after registration (inclusive)
- retention: enough LOGIN entries within the retention window
- time-to-value target: first source strictly under the target minutes after registration

A first-source event back-dated before registration yields a negative
time-to-value; it is reported as-is but never counts towards a goal.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.config import MetricsConfig, get_config
from src.db.models import ActivityType, User, UserActivityLog
from src.db.visibility import active_users
from src.errors import NotFoundError, ValidationError
from src.services.activity_service import ActivityService
from src.utils.time_window import ZERO, ensure_aware, within_window

logger = logging.getLogger(__name__)


@dataclass
class UserSuccessMetrics:
    user_id: str
    registered_at: datetime | None
    time_to_value: timedelta | None
    time_to_value_achieved: bool
    activation_achieved: bool
    retention_achieved: bool
    total_logins: int
    sentiment_corrections: int

    @property
    def time_to_value_minutes(self) -> int | None:
        if self.time_to_value is None:
            return None
        return int(self.time_to_value.total_seconds() // 60)


@dataclass
class GlobalSuccessMetrics:
    period_start: datetime
    period_end: datetime
    total_users: int
    time_to_value_achieved_count: int
    time_to_value_achieved_percentage: float
    average_time_to_value_minutes: float
    activation_achieved_count: int
    activation_achieved_percentage: float
    retention_achieved_count: int
    retention_achieved_percentage: float


def _percentage(count: int, total: int) -> float:
    return count / total * 100.0 if total else 0.0


class SuccessMetricsService:
    """Computes per-user and cohort success metrics on demand."""

    def __init__(self, db: Session, config: MetricsConfig | None = None) -> None:
        self.db = db
        self.config = config or get_config().metrics
        self.ledger = ActivityService(db)

    # Rules over already-loaded instants, shared by the per-user and cohort paths.

    def _activated(self, ttv: timedelta | None) -> bool:
        return ttv is not None and ZERO <= ttv <= timedelta(days=self.config.activation_window_days)

    def _met_target(self, ttv: timedelta | None) -> bool:
        return ttv is not None and ZERO <= ttv < timedelta(
            minutes=self.config.time_to_value_target_minutes
        )

    def _retained(self, registered: datetime, logins: list[datetime]) -> bool:
        window = timedelta(days=self.config.retention_window_days)
        in_window = sum(1 for moment in logins if within_window(registered, moment, window))
        return in_window >= self.config.retention_login_threshold

    def registered_at(self, user_id: str) -> datetime | None:
        return self.ledger.first_occurrence(user_id, ActivityType.USER_REGISTERED)

    def time_to_value(self, user_id: str) -> timedelta | None:
        """Duration between the earliest registration and first-source events.

        Later events of either type never change the result.
        """
        registered = self.registered_at(user_id)
        if registered is None:
            return None
        first_source = self.ledger.first_occurrence(
            user_id, ActivityType.FIRST_SOURCE_CONFIGURED_SUCCESSFULLY
        )
        if first_source is None:
            return None
        return first_source - registered

    def has_achieved_activation(self, user_id: str) -> bool:
        return self._activated(self.time_to_value(user_id))

    def has_achieved_retention(self, user_id: str) -> bool:
        registered = self.registered_at(user_id)
        if registered is None:
            return False
        window_end = registered + timedelta(days=self.config.retention_window_days)
        logins = self.ledger.count_between(user_id, ActivityType.LOGIN, registered, window_end)
        return logins >= self.config.retention_login_threshold

    def has_achieved_time_to_value_target(self, user_id: str) -> bool:
        return self._met_target(self.time_to_value(user_id))

    def user_success_metrics(self, user_id: str) -> UserSuccessMetrics:
        """All metrics for one user.

        Raises:
            NotFoundError: Unknown or deleted user.
        """
        if self.db.scalars(active_users().where(User.id == user_id)).first() is None:
            raise NotFoundError("User", user_id)

        ttv = self.time_to_value(user_id)
        return UserSuccessMetrics(
            user_id=user_id,
            registered_at=self.registered_at(user_id),
            time_to_value=ttv,
            time_to_value_achieved=self._met_target(ttv),
            activation_achieved=self._activated(ttv),
            retention_achieved=self.has_achieved_retention(user_id),
            total_logins=self.ledger.count_of_type(user_id, ActivityType.LOGIN),
            sentiment_corrections=self.ledger.count_of_type(
                user_id, ActivityType.SENTIMENT_CORRECTED
            ),
        )

    def global_success_metrics(self, start: datetime, end: datetime) -> GlobalSuccessMetrics:
        """Aggregate metrics over users whose first registration lies in [start, end].

        Runs a fixed number of queries regardless of cohort size.

        Raises:
            ValidationError: Naive bounds or start after end.
        """
        start = ensure_aware(start, "start")
        end = ensure_aware(end, "end")
        if start > end:
            raise ValidationError("Period start must not be after period end")

        first_registration = func.min(UserActivityLog.occurred_at)
        registered: dict[str, datetime] = dict(
            self.db.execute(
                select(UserActivityLog.user_id, first_registration)
                .where(UserActivityLog.activity_type == ActivityType.USER_REGISTERED.value)
                .group_by(UserActivityLog.user_id)
                .having(first_registration.between(start, end))
            ).all()
        )
        cohort = sorted(registered)

        first_source: dict[str, datetime] = {}
        logins: dict[str, list[datetime]] = {user_id: [] for user_id in cohort}
        if cohort:
            first_source = dict(
                self.db.execute(
                    select(UserActivityLog.user_id, func.min(UserActivityLog.occurred_at))
                    .where(
                        UserActivityLog.activity_type
                        == ActivityType.FIRST_SOURCE_CONFIGURED_SUCCESSFULLY.value,
                        UserActivityLog.user_id.in_(cohort),
                    )
                    .group_by(UserActivityLog.user_id)
                ).all()
            )
            # Retention windows open at registration, which is never before start.
            for user_id, occurred_at in self.db.execute(
                select(UserActivityLog.user_id, UserActivityLog.occurred_at).where(
                    UserActivityLog.activity_type == ActivityType.LOGIN.value,
                    UserActivityLog.user_id.in_(cohort),
                    UserActivityLog.occurred_at >= start,
                )
            ):
                logins[user_id].append(occurred_at)

        total = len(cohort)
        ttv_count = activation_count = retention_count = 0
        ttv_minutes: list[float] = []
        for user_id in cohort:
            ttv = first_source[user_id] - registered[user_id] if user_id in first_source else None
            if self._met_target(ttv):
                ttv_count += 1
            if self._activated(ttv):
                activation_count += 1
            if self._retained(registered[user_id], logins[user_id]):
                retention_count += 1
            if ttv is not None and ttv >= ZERO:
                ttv_minutes.append(ttv.total_seconds() / 60)

        metrics = GlobalSuccessMetrics(
            period_start=start,
            period_end=end,
            total_users=total,
            time_to_value_achieved_count=ttv_count,
            time_to_value_achieved_percentage=_percentage(ttv_count, total),
            average_time_to_value_minutes=sum(ttv_minutes) / len(ttv_minutes) if ttv_minutes else 0.0,
            activation_achieved_count=activation_count,
            activation_achieved_percentage=_percentage(activation_count, total),
            retention_achieved_count=retention_count,
            retention_achieved_percentage=_percentage(retention_count, total),
        )
        logger.info(
            "Global metrics %s..%s: users=%d ttv=%.1f%% activation=%.1f%% retention=%.1f%%",
            start.isoformat(), end.isoformat(), total,
            metrics.time_to_value_achieved_percentage,
            metrics.activation_achieved_percentage,
            metrics.retention_achieved_percentage,
        )
        return metrics
