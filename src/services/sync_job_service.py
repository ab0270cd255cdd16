"""Sync job lifecycle with state machine validation.

A SyncJob tracks one fetch of one review source. Jobs are queued PENDING
by source creation (INITIAL), manual refresh (MANUAL) and the sweep for
due sources (SCHEDULED); the sweep then moves each through IN_PROGRESS to
COMPLETED or FAILED.

Methods flush but do not commit; the caller owns the transaction.

Example:
    jobs = SyncJobService(db)
    job = jobs.create_job(source.id, JobType.SCHEDULED)
    jobs.mark_started(job.id)
    db.commit()
    ...
    jobs.mark_completed(job.id, reviews_fetched=12, reviews_new=3)
    db.commit()
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.config import ReviewPulseConfig, get_config
from src.db.models import Brand, JobStatus, JobType, ReviewSource, SyncJob
from src.db.visibility import active_sources, active_sync_jobs
from src.errors import (
    AccessDeniedError,
    InvalidJobTransitionError,
    NotFoundError,
    ValidationError,
)
from src.services.activity_service import ActivityPage
from src.services.brand_service import BrandService
from src.utils.time_window import Clock, utc_now

logger = logging.getLogger(__name__)

# Valid state transitions for the job lifecycle
VALID_TRANSITIONS: dict[JobStatus, list[JobStatus]] = {
    JobStatus.PENDING: [JobStatus.IN_PROGRESS, JobStatus.FAILED],
    JobStatus.IN_PROGRESS: [JobStatus.COMPLETED, JobStatus.FAILED],
    JobStatus.COMPLETED: [],  # terminal
    JobStatus.FAILED: [],  # terminal; the next sweep queues a new job
}

ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.IN_PROGRESS.value)


@dataclass
class SyncJobPage(ActivityPage):
    """One page of a source's sync jobs, newest first."""

    items: list[SyncJob]


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, [])


class SyncJobService:
    """Creates, advances and reads sync jobs."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utc_now,
        config: ReviewPulseConfig | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.config = config or get_config()
        self.brands = BrandService(db, clock=clock, plans=self.config.plans)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_job(self, source_id: str, job_type: JobType | str) -> SyncJob:
        """Queue a PENDING job for a live source.

        Raises:
            ValidationError: Unknown job type.
            NotFoundError: Unknown or soft-deleted source.
        """
        try:
            kind = JobType(job_type)
        except ValueError as e:
            raise ValidationError(f"Unknown job type '{job_type}'") from e
        source = self.db.scalars(active_sources().where(ReviewSource.id == source_id)).first()
        if source is None:
            raise NotFoundError("ReviewSource", source_id)

        job = SyncJob(
            source_id=source.id,
            job_type=kind.value,
            status=JobStatus.PENDING.value,
            created_at=self.clock(),
        )
        self.db.add(job)
        self.db.flush()
        logger.debug("Queued %s sync job %s for source %s", kind.value, job.id, source_id)
        return job

    def create_initial_import_job(self, source_id: str) -> SyncJob:
        return self.create_job(source_id, JobType.INITIAL)

    def create_scheduled_sync_job(self, source_id: str) -> SyncJob:
        return self.create_job(source_id, JobType.SCHEDULED)

    def create_manual_sync_job(self, source_id: str) -> SyncJob:
        return self.create_job(source_id, JobType.MANUAL)

    # =========================================================================
    # State machine
    # =========================================================================

    def get_job(self, job_id: int) -> SyncJob:
        """Resolve a job whose source and brand are still live.

        Raises:
            NotFoundError: Unknown job, or its source or brand was deleted.
        """
        job = self.db.scalars(active_sync_jobs().where(SyncJob.id == job_id)).first()
        if job is None:
            raise NotFoundError("SyncJob", str(job_id))
        return job

    def _transition(self, job: SyncJob, target: JobStatus) -> None:
        current = JobStatus(job.status)
        if not can_transition(current, target):
            raise InvalidJobTransitionError(
                job.id,
                current.value,
                target.value,
                [s.value for s in VALID_TRANSITIONS[current]],
            )
        job.status = target.value

    def mark_started(self, job_id: int) -> SyncJob:
        job = self.get_job(job_id)
        self._transition(job, JobStatus.IN_PROGRESS)
        job.started_at = self.clock()
        self.db.flush()
        logger.info("Sync job %s started (%s, source %s)", job.id, job.job_type, job.source_id)
        return job

    def mark_completed(self, job_id: int, reviews_fetched: int = 0, reviews_new: int = 0) -> SyncJob:
        """Close a running job with its review counts.

        Raises:
            ValidationError: Negative counts, or more new reviews than fetched.
            InvalidJobTransitionError: The job is not IN_PROGRESS.
        """
        if reviews_fetched < 0 or reviews_new < 0:
            raise ValidationError("Review counts must be >= 0")
        if reviews_new > reviews_fetched:
            raise ValidationError("reviews_new cannot exceed reviews_fetched")
        job = self.get_job(job_id)
        self._transition(job, JobStatus.COMPLETED)
        job.completed_at = self.clock()
        job.reviews_fetched = reviews_fetched
        job.reviews_new = reviews_new
        job.error_message = None
        self.db.flush()
        logger.info(
            "Sync job %s completed: fetched=%d new=%d",
            job.id, reviews_fetched, reviews_new,
        )
        return job

    def mark_failed(self, job_id: int, error_message: str) -> SyncJob:
        """Close a pending or running job with an error."""
        job = self.get_job(job_id)
        self._transition(job, JobStatus.FAILED)
        job.completed_at = self.clock()
        job.error_message = error_message
        self.db.flush()
        logger.warning("Sync job %s failed: %s", job.id, error_message[:200])
        return job

    # =========================================================================
    # Reads
    # =========================================================================

    def get_job_for_user(self, job_id: int, user_id: str) -> SyncJob:
        """Resolve a job for display to the owner of its brand.

        Raises:
            NotFoundError: Unknown or hidden job.
            AccessDeniedError: The job's brand belongs to someone else.
        """
        job = self.get_job(job_id)
        owner_id = self.db.scalar(
            select(Brand.user_id)
            .join(ReviewSource, ReviewSource.brand_id == Brand.id)
            .where(ReviewSource.id == job.source_id)
        )
        if owner_id != user_id:
            logger.warning("User %s denied access to sync job %s", user_id, job_id)
            raise AccessDeniedError("You do not have access to this sync job")
        return job

    def job_history(
        self,
        brand_id: str,
        source_id: str,
        user_id: str,
        page: int = 0,
        size: int | None = None,
    ) -> SyncJobPage:
        """One page of a source's jobs, newest first.

        Raises:
            ValidationError: Negative page or size below 1.
            NotFoundError / AccessDeniedError: Brand or source lookup failed.
        """
        pagination = self.config.pagination
        if page < 0:
            raise ValidationError(f"Page must be >= 0, got {page}")
        size = pagination.default_page_size if size is None else size
        if size < 1:
            raise ValidationError(f"Page size must be >= 1, got {size}")
        size = min(size, pagination.max_page_size)

        brand = self.brands.get_owned_brand(brand_id, user_id)
        source = self.db.scalars(active_sources().where(ReviewSource.id == source_id)).first()
        if source is None:
            raise NotFoundError("ReviewSource", source_id)
        if source.brand_id != brand.id:
            raise AccessDeniedError("Review source does not belong to this brand")

        total = self.db.scalar(
            select(func.count(SyncJob.id)).where(SyncJob.source_id == source.id)
        ) or 0
        items = self.db.scalars(
            select(SyncJob)
            .where(SyncJob.source_id == source.id)
            .order_by(SyncJob.created_at.desc(), SyncJob.id.desc())
            .offset(page * size)
            .limit(size)
        ).all()
        return SyncJobPage(items=list(items), page=page, size=size, total_items=total)

    def has_active_job(self, source_id: str) -> bool:
        """True while the source has a PENDING or IN_PROGRESS job."""
        return (
            self.db.scalar(
                select(func.count(SyncJob.id)).where(
                    SyncJob.source_id == source_id, SyncJob.status.in_(ACTIVE_STATUSES)
                )
            )
            or 0
        ) > 0

    def find_pending_jobs(self) -> list[SyncJob]:
        """PENDING jobs of live sources, oldest first."""
        return list(
            self.db.scalars(
                active_sync_jobs()
                .where(SyncJob.status == JobStatus.PENDING.value)
                .order_by(SyncJob.created_at, SyncJob.id)
            ).all()
        )

    def find_stuck_jobs(self, threshold_minutes: int | None = None) -> list[SyncJob]:
        """IN_PROGRESS jobs started more than threshold_minutes ago."""
        minutes = (
            self.config.scheduling.stuck_job_threshold_minutes
            if threshold_minutes is None
            else threshold_minutes
        )
        if minutes < 1:
            raise ValidationError(f"Threshold must be >= 1 minute, got {minutes}")
        cutoff = self.clock() - timedelta(minutes=minutes)
        return list(
            self.db.scalars(
                active_sync_jobs()
                .where(
                    SyncJob.status == JobStatus.IN_PROGRESS.value,
                    SyncJob.started_at < cutoff,
                )
                .order_by(SyncJob.started_at, SyncJob.id)
            ).all()
        )

    def fail_stuck_jobs(self, threshold_minutes: int | None = None) -> list[SyncJob]:
        """Mark every stuck job FAILED so its source can be queued again."""
        stuck = self.find_stuck_jobs(threshold_minutes)
        for job in stuck:
            self.mark_failed(job.id, "Abandoned: still in progress past the stuck-job threshold")
        return stuck
