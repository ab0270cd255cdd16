"""Tests for SyncJobService: creation, state machine, history and stuck jobs."""

import pytest
from sqlalchemy.orm import Session

from src.config import ReviewPulseConfig
from src.db.models import JobStatus, JobType, SyncJob
from src.errors import (
    AccessDeniedError,
    InvalidJobTransitionError,
    NotFoundError,
    ValidationError,
)
from src.services.brand_service import BrandService
from src.services.sync_job_service import VALID_TRANSITIONS, SyncJobService, can_transition
from src.services.sync_scheduler import SyncScheduler
from tests.helpers import FixedClock, google_source, make_brand, make_user


@pytest.fixture
def jobs(db: Session, clock: FixedClock, config: ReviewPulseConfig) -> SyncJobService:
    return SyncJobService(db, clock=clock, config=config)


@pytest.fixture
def created(source_service, owner, brand):
    return source_service.create_source(brand.id, owner.id, google_source())


class TestStateMachine:
    def test_terminal_states_have_no_exits(self):
        assert VALID_TRANSITIONS[JobStatus.COMPLETED] == []
        assert VALID_TRANSITIONS[JobStatus.FAILED] == []

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (JobStatus.PENDING, JobStatus.IN_PROGRESS, True),
            (JobStatus.PENDING, JobStatus.FAILED, True),
            (JobStatus.PENDING, JobStatus.COMPLETED, False),
            (JobStatus.IN_PROGRESS, JobStatus.COMPLETED, True),
            (JobStatus.COMPLETED, JobStatus.IN_PROGRESS, False),
        ],
    )
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_full_lifecycle(self, db: Session, jobs, created, clock):
        job_id = created.initial_job.id
        started_at = clock()
        jobs.mark_started(job_id)
        clock.advance(minutes=2)
        job = jobs.mark_completed(job_id, reviews_fetched=5, reviews_new=3)

        assert job.status == JobStatus.COMPLETED.value
        assert job.started_at == started_at
        assert job.completed_at == clock()
        assert (job.reviews_fetched, job.reviews_new) == (5, 3)
        assert job.is_terminal

    def test_complete_without_start_rejected(self, jobs, created):
        with pytest.raises(InvalidJobTransitionError) as exc_info:
            jobs.mark_completed(created.initial_job.id)
        assert exc_info.value.current_status == "PENDING"
        assert exc_info.value.allowed == ["IN_PROGRESS", "FAILED"]
        assert exc_info.value.code == "E-3002"

    def test_failed_job_cannot_restart(self, jobs, created):
        jobs.mark_failed(created.initial_job.id, "boom")
        with pytest.raises(InvalidJobTransitionError, match="none \\(terminal\\)"):
            jobs.mark_started(created.initial_job.id)

    def test_counts_validated(self, jobs, created):
        jobs.mark_started(created.initial_job.id)
        with pytest.raises(ValidationError):
            jobs.mark_completed(created.initial_job.id, reviews_fetched=1, reviews_new=2)
        with pytest.raises(ValidationError):
            jobs.mark_completed(created.initial_job.id, reviews_fetched=-1)


class TestCreation:
    def test_source_creation_queues_initial_import(self, db: Session, jobs, created, clock):
        job = created.initial_job
        assert job.job_type == JobType.INITIAL.value
        assert job.status == JobStatus.PENDING.value
        assert job.created_at == clock()
        assert jobs.has_active_job(created.source.id)

    def test_unknown_type_rejected(self, jobs, created):
        with pytest.raises(ValidationError):
            jobs.create_job(created.source.id, "WEEKLY")

    def test_deleted_source_rejected(self, db: Session, jobs, source_service, created, owner, brand):
        source_service.delete_source(brand.id, created.source.id, owner.id)
        with pytest.raises(NotFoundError):
            jobs.create_scheduled_sync_job(created.source.id)

    def test_manual_refresh_skips_sources_with_active_job(
        self, db: Session, jobs, created, owner, brand, clock, config
    ):
        scheduler = SyncScheduler(db, config=config.scheduling, clock=clock)
        first = scheduler.trigger_manual_refresh(brand.id, owner.id)
        assert first.source_ids == [created.source.id]
        assert first.job_ids == []

        jobs.mark_started(created.initial_job.id)
        jobs.mark_completed(created.initial_job.id)
        db.commit()
        clock.advance(hours=24)
        second = scheduler.trigger_manual_refresh(brand.id, owner.id)

        assert len(second.job_ids) == 1
        manual = db.get(SyncJob, second.job_ids[0])
        assert manual.job_type == JobType.MANUAL.value
        assert manual.status == JobStatus.PENDING.value


class TestReads:
    def test_history_newest_first_and_paged(self, db: Session, jobs, created, owner, brand, clock):
        source_id = created.source.id
        jobs.mark_failed(created.initial_job.id, "first attempt")
        for _ in range(2):
            clock.advance(hours=1)
            job = jobs.create_scheduled_sync_job(source_id)
            jobs.mark_failed(job.id, "again")
        db.commit()

        page = jobs.job_history(brand.id, source_id, owner.id, page=0, size=2)

        assert page.total_items == 3
        assert page.total_pages == 2
        assert page.has_next and not page.has_previous
        assert [j.job_type for j in page.items] == ["SCHEDULED", "SCHEDULED"]
        last = jobs.job_history(brand.id, source_id, owner.id, page=1, size=2)
        assert [j.id for j in last.items] == [created.initial_job.id]

    def test_history_of_someone_elses_source(self, db: Session, jobs, created, brand, clock):
        stranger = make_user(db, "stranger@example.com", clock=clock)
        with pytest.raises(AccessDeniedError):
            jobs.job_history(brand.id, created.source.id, stranger.id)

    def test_history_source_must_belong_to_brand(self, db: Session, jobs, created, clock):
        other = make_user(db, "other@example.com", clock=clock)
        other_brand = make_brand(db, other, "Other", clock=clock)
        with pytest.raises(AccessDeniedError):
            jobs.job_history(other_brand.id, created.source.id, other.id)

    def test_history_bad_paging(self, jobs, created, owner, brand):
        with pytest.raises(ValidationError):
            jobs.job_history(brand.id, created.source.id, owner.id, page=-1)
        with pytest.raises(ValidationError):
            jobs.job_history(brand.id, created.source.id, owner.id, size=0)

    def test_get_job_for_owner_only(self, db: Session, jobs, created, owner, clock):
        job_id = created.initial_job.id
        assert jobs.get_job_for_user(job_id, owner.id).id == job_id
        stranger = make_user(db, "stranger@example.com", clock=clock)
        with pytest.raises(AccessDeniedError):
            jobs.get_job_for_user(job_id, stranger.id)
        with pytest.raises(NotFoundError):
            jobs.get_job_for_user(999_999, owner.id)

    def test_jobs_hidden_with_their_brand(
        self, db: Session, jobs, created, owner, brand, clock, config
    ):
        BrandService(db, clock=clock, plans=config.plans).delete_brand(brand.id, owner.id)
        db.commit()
        with pytest.raises(NotFoundError):
            jobs.get_job(created.initial_job.id)
        assert jobs.find_pending_jobs() == []


class TestStuckJobs:
    def test_only_long_running_jobs_are_stuck(self, db: Session, jobs, created, clock):
        jobs.mark_started(created.initial_job.id)
        db.commit()

        clock.advance(minutes=29)
        assert jobs.find_stuck_jobs(30) == []
        clock.advance(minutes=2)
        assert [j.id for j in jobs.find_stuck_jobs(30)] == [created.initial_job.id]

    def test_default_threshold_from_config(self, db: Session, created, clock):
        config = ReviewPulseConfig(scheduling={"stuck_job_threshold_minutes": 5})
        jobs = SyncJobService(db, clock=clock, config=config)
        jobs.mark_started(created.initial_job.id)
        clock.advance(minutes=6)
        assert len(jobs.find_stuck_jobs()) == 1

    def test_fail_stuck_jobs_frees_the_source(self, db: Session, jobs, created, clock):
        source_id = created.source.id
        jobs.mark_started(created.initial_job.id)
        clock.advance(hours=2)

        failed = jobs.fail_stuck_jobs(30)

        assert [j.status for j in failed] == ["FAILED"]
        assert "stuck-job threshold" in failed[0].error_message
        assert not jobs.has_active_job(source_id)

    def test_threshold_must_be_positive(self, jobs):
        with pytest.raises(ValidationError):
            jobs.find_stuck_jobs(0)
