"""API routes for review source management.

Endpoints live under /api/v1/brands/{brand_id}/review-sources. Creation
is quota-guarded: 403 with the current count and limit when the plan is
full, 409 for a duplicate profile or unresolved contention.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from src.api.deps import get_clock, get_current_user_id
from src.api.schemas import (
    ReviewSourceCreate,
    ReviewSourceListResponse,
    ReviewSourceResponse,
    ReviewSourceUpdate,
)
from src.db.connection import get_db
from src.services.review_source_service import NewSource, ReviewSourceService
from src.utils.time_window import Clock

router = APIRouter(prefix="/brands/{brand_id}/review-sources", tags=["review-sources"])


def _get_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ReviewSourceService:
    """Dependency injector for ReviewSourceService."""
    return ReviewSourceService(db, clock=clock)


@router.post("", response_model=ReviewSourceResponse, status_code=status.HTTP_201_CREATED)
def create_review_source(
    brand_id: str,
    data: ReviewSourceCreate,
    user_id: str = Depends(get_current_user_id),
    service: ReviewSourceService = Depends(_get_service),
) -> ReviewSourceResponse:
    """Configure a new review source for the brand."""
    created = service.create_source(
        brand_id,
        user_id,
        NewSource(
            platform_type=data.platform_type.value,
            profile_url=data.profile_url,
            external_profile_id=data.external_profile_id,
            auth_method=data.auth_method.value,
            credentials=data.credentials,
        ),
    )
    return ReviewSourceResponse.model_validate(created.source)


@router.get("", response_model=ReviewSourceListResponse)
def list_review_sources(
    brand_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ReviewSourceService = Depends(_get_service),
) -> ReviewSourceListResponse:
    sources = service.list_sources(brand_id, user_id)
    return ReviewSourceListResponse(
        sources=[ReviewSourceResponse.model_validate(s) for s in sources],
        total=len(sources),
    )


@router.get("/{source_id}", response_model=ReviewSourceResponse)
def get_review_source(
    brand_id: str,
    source_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ReviewSourceService = Depends(_get_service),
) -> ReviewSourceResponse:
    return ReviewSourceResponse.model_validate(service.get_source(brand_id, source_id, user_id))


@router.patch("/{source_id}", response_model=ReviewSourceResponse)
def update_review_source(
    brand_id: str,
    source_id: str,
    data: ReviewSourceUpdate,
    user_id: str = Depends(get_current_user_id),
    service: ReviewSourceService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> ReviewSourceResponse:
    """Toggle a source or change its profile URL."""
    source = service.update_source(
        brand_id, source_id, user_id, is_active=data.is_active, profile_url=data.profile_url
    )
    db.commit()
    return ReviewSourceResponse.model_validate(source)


@router.delete("/{source_id}")
def delete_review_source(
    brand_id: str,
    source_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ReviewSourceService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> dict:
    """Soft-delete a source; its quota slot is released."""
    service.delete_source(brand_id, source_id, user_id)
    db.commit()
    return {"status": "deleted", "source_id": source_id}
