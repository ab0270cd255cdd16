"""Periodic sync sweep.

An external scheduler (cron, systemd timer, the ``reviewpulse sweep`` CLI)
calls run_sync_sweep at least once an hour. The sweep runs every PENDING
sync job (initial imports, manual refreshes) and queues a SCHEDULED job for
each due source that has none in flight. Each job's source is handed to the
injected pipeline callable; fetched reviews are stored and the outcome is
recorded on the source and the job, one committed transaction per job so
that one failing source never blocks the others.

A source deleted or paused after its job was queued is skipped.

Example:
    def pipeline(source: ReviewSource) -> list[FetchedReview]:
        return google_client.fetch(source.external_profile_id)

    with get_db_context() as db:
        report = run_sync_sweep(db, pipeline)
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from src.config import SchedulingConfig
from src.db.models import ReviewSource, SyncJob, SyncStatus
from src.db.visibility import active_sources
from src.errors import DomainError, NotFoundError
from src.services.review_ingest import FetchedReview, ReviewIngestService
from src.services.sync_job_service import SyncJobService
from src.services.sync_scheduler import SyncScheduler
from src.utils.time_window import Clock, ensure_aware, utc_now

logger = logging.getLogger(__name__)

SyncPipeline = Callable[[ReviewSource], Iterable[FetchedReview]]


@dataclass
class SourceSyncOutcome:
    source_id: str
    status: SyncStatus
    reviews_created: int = 0
    error: str | None = None
    job_id: int | None = None


@dataclass
class SweepReport:
    started_at: datetime
    outcomes: list[SourceSyncOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status is SyncStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is SyncStatus.FAILED)


def _queue_jobs(jobs: SyncJobService, scheduler: SyncScheduler, started: datetime) -> list[SyncJob]:
    """Pending jobs, one per source, plus a SCHEDULED job for each idle due source."""
    queue: list[SyncJob] = []
    queued_sources: set[str] = set()
    for job in jobs.find_pending_jobs():
        if job.source_id not in queued_sources:
            queued_sources.add(job.source_id)
            queue.append(job)

    for source in scheduler.find_sources_ready_for_sync(started):
        if source.id in queued_sources or jobs.has_active_job(source.id):
            continue
        queued_sources.add(source.id)
        queue.append(jobs.create_scheduled_sync_job(source.id))
    return queue


def run_sync_sweep(
    db: Session,
    pipeline: SyncPipeline,
    now: datetime | None = None,
    clock: Clock = utc_now,
    config: SchedulingConfig | None = None,
) -> SweepReport:
    """Run queued jobs and sync every source due at ``now``.

    Pipeline exceptions are recorded as FAILED outcomes carrying the
    exception text; the sweep continues with the next job.

    Args:
        db: Session; committed after each job.
        pipeline: Fetches reviews for one source.
        now: Instant deciding which sources are due (defaults to the clock).
        clock: Clock for outcome timestamps.
        config: Scheduling settings.

    Returns:
        SweepReport with one outcome per job run and the ids of sources
        that disappeared or were paused before their turn.
    """
    started = ensure_aware(now) if now is not None else clock()
    scheduler = SyncScheduler(db, config=config, clock=clock)
    ingest = ReviewIngestService(db, clock=clock)
    jobs = SyncJobService(db, clock=clock)

    queue = [(job.id, job.source_id) for job in _queue_jobs(jobs, scheduler, started)]
    db.commit()
    logger.info("Sync sweep at %s: %d job(s) queued", started.isoformat(), len(queue))

    report = SweepReport(started_at=started)
    for job_id, source_id in queue:
        source = db.scalars(
            active_sources().where(
                ReviewSource.id == source_id, ReviewSource.is_active.is_(True)
            )
        ).first()
        if source is None:
            logger.info("Source %s was deleted or paused; skipping job %s", source_id, job_id)
            report.skipped.append(source_id)
            continue

        jobs.mark_started(job_id)
        db.commit()
        try:
            fetched = list(pipeline(source))
            created = ingest.ingest(source_id, fetched).created_count
            scheduler.record_sync_outcome(source_id, SyncStatus.SUCCESS)
            jobs.mark_completed(job_id, reviews_fetched=len(fetched), reviews_new=created)
        except Exception as e:
            # The pipeline is third-party code; any failure is this source's outcome.
            db.rollback()
            message = f"{type(e).__name__}: {e}" if not isinstance(e, DomainError) else e.message
            try:
                scheduler.record_sync_outcome(source_id, SyncStatus.FAILED, message)
            except NotFoundError:
                db.rollback()
                logger.warning("Source %s was deleted during its sync; skipping", source_id)
                report.skipped.append(source_id)
                continue
            jobs.mark_failed(job_id, message)
            db.commit()
            report.outcomes.append(
                SourceSyncOutcome(source_id, SyncStatus.FAILED, error=message, job_id=job_id)
            )
            continue

        db.commit()
        report.outcomes.append(
            SourceSyncOutcome(source_id, SyncStatus.SUCCESS, created, job_id=job_id)
        )

    logger.info(
        "Sync sweep finished: %d succeeded, %d failed, %d skipped",
        report.succeeded, report.failed, len(report.skipped),
    )
    return report
