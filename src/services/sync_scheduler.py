"""Sync scheduling: daily sync window, sync outcomes and manual refresh.

Sources sync once a day at a fixed wall-clock hour in a reference timezone
(03:00 Europe/Paris by default). Users may additionally trigger a manual
refresh of a whole brand, at most once per cooldown window (24 hours).

The pure functions at module level take "now" explicitly; the service
reads it from an injected clock.

Example:
    scheduler = SyncScheduler(db)
    for source in scheduler.find_sources_ready_for_sync():
        ...
        scheduler.record_sync_outcome(source.id, SyncStatus.SUCCESS)
    db.commit()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from src.config import SchedulingConfig, get_config
from src.db.connection import run_in_transaction
from src.db.models import Brand, ReviewSource, SyncStatus
from src.db.visibility import active_sources
from src.errors import CooldownActiveError, NotFoundError, ValidationError
from src.services.activity_service import ActivityService
from src.services.brand_service import BrandService
from src.services.sync_job_service import SyncJobService
from src.utils.time_window import (
    ZERO,
    Clock,
    cooldown_remaining,
    ensure_aware,
    next_daily_occurrence,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_SYNC_HOUR = 3
DEFAULT_SYNC_TIMEZONE = "Europe/Paris"
DEFAULT_COOLDOWN = timedelta(hours=24)

_LOGGED_ERROR_CHARS = 200


def next_scheduled_sync_time(
    now: datetime,
    hour: int = DEFAULT_SYNC_HOUR,
    tz: str = DEFAULT_SYNC_TIMEZONE,
) -> datetime:
    """Next daily sync instant strictly after ``now``, in UTC."""
    return next_daily_occurrence(now, hour, tz)


def time_until_next_refresh(
    last_manual_refresh_at: datetime | None,
    now: datetime,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> timedelta:
    """Remaining cooldown; zero exactly when a refresh is allowed."""
    return cooldown_remaining(last_manual_refresh_at, now, cooldown)


def can_refresh(
    last_manual_refresh_at: datetime | None,
    now: datetime,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> bool:
    return time_until_next_refresh(last_manual_refresh_at, now, cooldown) == ZERO


@dataclass
class RefreshStatus:
    """Whether a brand may refresh now, for UI display."""

    can_refresh: bool
    remaining: timedelta
    next_allowed_at: datetime
    last_manual_refresh_at: datetime | None


@dataclass
class RefreshResult:
    brand_id: str
    triggered_at: datetime
    source_ids: list[str]
    next_allowed_at: datetime
    job_ids: list[int] = field(default_factory=list)


def _coerce_status(status: SyncStatus | str) -> SyncStatus:
    try:
        return SyncStatus(status)
    except ValueError as e:
        raise ValidationError(f"Unknown sync status '{status}'") from e


class SyncScheduler:
    """Stateful side of scheduling, bound to a session and a clock.

    record_sync_outcome does not commit; trigger_manual_refresh owns a
    retried transaction because it is a check-then-act on the brand row.
    """

    def __init__(
        self,
        db: Session,
        config: SchedulingConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.config = config or get_config().scheduling
        self.clock = clock

    def next_scheduled_sync_time(self, now: datetime | None = None) -> datetime:
        return next_scheduled_sync_time(
            now if now is not None else self.clock(),
            self.config.sync_hour,
            self.config.sync_timezone,
        )

    def can_refresh(self, last_manual_refresh_at: datetime | None, now: datetime | None = None) -> bool:
        return can_refresh(
            last_manual_refresh_at,
            now if now is not None else self.clock(),
            self.config.cooldown,
        )

    def time_until_next_refresh(
        self, last_manual_refresh_at: datetime | None, now: datetime | None = None
    ) -> timedelta:
        return time_until_next_refresh(
            last_manual_refresh_at,
            now if now is not None else self.clock(),
            self.config.cooldown,
        )

    def refresh_status(self, brand: Brand, now: datetime | None = None) -> RefreshStatus:
        current = ensure_aware(now) if now is not None else self.clock()
        remaining = self.time_until_next_refresh(brand.last_manual_refresh_at, current)
        return RefreshStatus(
            can_refresh=remaining == ZERO,
            remaining=remaining,
            next_allowed_at=current + remaining,
            last_manual_refresh_at=brand.last_manual_refresh_at,
        )

    def record_sync_outcome(
        self,
        source_id: str,
        status: SyncStatus | str,
        error_message: str | None = None,
    ) -> ReviewSource:
        """Store the result of a sync and schedule the next one.

        Overwrites the previous outcome, so retrying with the same arguments
        is harmless. The error message is kept only for FAILED.

        Raises:
            NotFoundError: Unknown or soft-deleted source.
            ValidationError: Unknown status.
        """
        outcome = _coerce_status(status)
        source = self.db.scalars(active_sources().where(ReviewSource.id == source_id)).first()
        if source is None:
            raise NotFoundError("ReviewSource", source_id)

        now = self.clock()
        source.last_sync_at = now
        source.last_sync_status = outcome.value
        source.last_sync_error = error_message if outcome is SyncStatus.FAILED else None
        source.next_scheduled_sync_at = self.next_scheduled_sync_time(now)
        source.updated_at = now
        self.db.flush()

        if outcome is SyncStatus.FAILED:
            logger.warning(
                "Sync failed for source %s: %s",
                source_id, (error_message or "")[:_LOGGED_ERROR_CHARS],
            )
        else:
            logger.info(
                "Sync succeeded for source %s; next at %s",
                source_id, source.next_scheduled_sync_at.isoformat(),
            )
        return source

    def find_sources_ready_for_sync(self, now: datetime | None = None) -> list[ReviewSource]:
        """Active sources on live brands whose next sync is due, earliest first."""
        current = ensure_aware(now) if now is not None else self.clock()
        return list(
            self.db.scalars(
                active_sources()
                .where(
                    ReviewSource.is_active.is_(True),
                    ReviewSource.next_scheduled_sync_at.is_not(None),
                    ReviewSource.next_scheduled_sync_at <= current,
                )
                .order_by(ReviewSource.next_scheduled_sync_at, ReviewSource.id)
            ).all()
        )

    def trigger_manual_refresh(
        self, brand_id: str, user_id: str, attempts: int | None = None
    ) -> RefreshResult:
        """Start a manual refresh of every active source of a brand.

        Stamps last_manual_refresh_at, queues a MANUAL sync job per source
        and appends MANUAL_REFRESH_TRIGGERED in one committed transaction.
        A source whose job is still pending or running keeps that job. The
        stamp bumps the brand version, so of two concurrent triggers one
        replays and meets the cooldown.

        Raises:
            NotFoundError / AccessDeniedError: Brand lookup failed.
            CooldownActiveError: Inside the cooldown window.
            ConcurrentModificationError: Contention outlasted the attempts.
        """
        brands = BrandService(self.db, clock=self.clock)
        ledger = ActivityService(self.db, clock=self.clock)
        jobs = SyncJobService(self.db, clock=self.clock)

        def _trigger() -> RefreshResult:
            now = self.clock()
            brand = brands.get_owned_brand(brand_id, user_id)
            remaining = self.time_until_next_refresh(brand.last_manual_refresh_at, now)
            if remaining > ZERO:
                logger.warning(
                    "Manual refresh for brand %s rejected: %ds of cooldown left",
                    brand_id, int(remaining.total_seconds()),
                )
                raise CooldownActiveError(remaining, now + remaining)

            source_ids = [
                source.id
                for source in self.db.scalars(
                    active_sources()
                    .where(ReviewSource.brand_id == brand.id, ReviewSource.is_active.is_(True))
                    .order_by(ReviewSource.created_at, ReviewSource.id)
                )
            ]
            job_ids = [
                jobs.create_manual_sync_job(source_id).id
                for source_id in source_ids
                if not jobs.has_active_job(source_id)
            ]
            brand.last_manual_refresh_at = now
            brand.touch(now)
            ledger.log_manual_refresh_triggered(user_id, brand.id, source_ids)
            return RefreshResult(
                brand_id=brand.id,
                triggered_at=now,
                source_ids=source_ids,
                next_allowed_at=now + self.config.cooldown,
                job_ids=job_ids,
            )

        result = run_in_transaction(
            self.db,
            _trigger,
            operation="trigger_manual_refresh",
            attempts=attempts or self.config.max_transaction_attempts,
        )
        logger.info(
            "Manual refresh triggered for brand %s (%d sources, %d jobs queued)",
            brand_id, len(result.source_ids), len(result.job_ids),
        )
        return result
