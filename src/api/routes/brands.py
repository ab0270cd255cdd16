"""API routes for brands and manual refresh.

All endpoints use the /api/v1/brands prefix and act on behalf of the
user named in X-User-Id. Domain errors propagate to the application's
exception handler, which maps them to status codes.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from src.api.deps import get_clock, get_current_user_id
from src.api.schemas import BrandCreate, BrandResponse, ManualRefreshResponse
from src.db.connection import get_db
from src.db.models import Brand
from src.services.brand_service import BrandService
from src.services.source_quota import SourceQuotaGuard
from src.services.sync_scheduler import SyncScheduler
from src.utils.time_window import Clock

router = APIRouter(prefix="/brands", tags=["brands"])


def _brand_response(db: Session, brand: Brand, clock: Clock) -> BrandResponse:
    refresh = SyncScheduler(db, clock=clock).refresh_status(brand)
    return BrandResponse(
        id=brand.id,
        name=brand.name,
        user_id=brand.user_id,
        last_manual_refresh_at=brand.last_manual_refresh_at,
        first_source_configured_at=brand.first_source_configured_at,
        can_manual_refresh=refresh.can_refresh,
        next_manual_refresh_available_at=None if refresh.can_refresh else refresh.next_allowed_at,
        source_count=SourceQuotaGuard(db).count_active_sources(brand.id),
        created_at=brand.created_at,
        updated_at=brand.updated_at,
    )


@router.post("", response_model=BrandResponse, status_code=status.HTTP_201_CREATED)
def create_brand(
    data: BrandCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BrandResponse:
    """Create the caller's brand (one per user).

    Raises:
        DuplicateBrandError: 409 if the caller already has a brand.
    """
    brand = BrandService(db, clock=clock).create_brand(user_id, data.name)
    return _brand_response(db, brand, clock)


@router.get("/me", response_model=BrandResponse)
def get_my_brand(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BrandResponse:
    """Get the caller's brand with its manual-refresh window."""
    brand = BrandService(db, clock=clock).get_brand_for_user(user_id)
    return _brand_response(db, brand, clock)


@router.delete("/{brand_id}")
def delete_brand(
    brand_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> dict:
    """Soft-delete a brand and its review sources."""
    BrandService(db, clock=clock).delete_brand(brand_id, user_id)
    db.commit()
    return {"status": "deleted", "brand_id": brand_id}


@router.post(
    "/{brand_id}/refresh",
    response_model=ManualRefreshResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_manual_refresh(
    brand_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ManualRefreshResponse:
    """Queue a refresh of every active source of the brand.

    Raises:
        CooldownActiveError: 429 inside the 24-hour cooldown window.
    """
    result = SyncScheduler(db, clock=clock).trigger_manual_refresh(brand_id, user_id)
    return ManualRefreshResponse(
        brand_id=result.brand_id,
        triggered_at=result.triggered_at,
        source_ids=result.source_ids,
        job_ids=result.job_ids,
        next_manual_refresh_available_at=result.next_allowed_at,
    )
