"""API routes for sync job status and history.

A source's jobs are listed under its review-source path; a single job is
read by id. Both check that the caller owns the job's brand.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.api.deps import get_clock, get_current_user_id
from src.api.schemas import PaginationResponse, SyncJobListResponse, SyncJobResponse
from src.db.connection import get_db
from src.services.sync_job_service import SyncJobService
from src.utils.time_window import Clock

router = APIRouter(tags=["sync-jobs"])


def get_job_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SyncJobService:
    """Dependency to get SyncJobService instance."""
    return SyncJobService(db, clock=clock)


@router.get(
    "/brands/{brand_id}/review-sources/{source_id}/sync-jobs",
    response_model=SyncJobListResponse,
)
def list_sync_jobs(
    brand_id: str,
    source_id: str,
    page: int = Query(0),
    size: int | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: SyncJobService = Depends(get_job_service),
) -> SyncJobListResponse:
    """Sync history of one source, newest first."""
    result = service.job_history(brand_id, source_id, user_id, page=page, size=size)
    return SyncJobListResponse(
        jobs=[SyncJobResponse.model_validate(job) for job in result.items],
        pagination=PaginationResponse(
            current_page=result.page,
            page_size=result.size,
            total_items=result.total_items,
            total_pages=result.total_pages,
            has_next=result.has_next,
            has_previous=result.has_previous,
        ),
    )


@router.get("/sync-jobs/{job_id}", response_model=SyncJobResponse)
def get_sync_job(
    job_id: int,
    user_id: str = Depends(get_current_user_id),
    service: SyncJobService = Depends(get_job_service),
) -> SyncJobResponse:
    return SyncJobResponse.model_validate(service.get_job_for_user(job_id, user_id))
