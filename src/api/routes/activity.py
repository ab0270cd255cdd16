"""API routes for the caller's activity ledger.

GET lists entries newest first with 0-based pagination; POST records
client-side actions (login, dashboard views, filters).
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from src.api.deps import get_clock, get_current_user_id
from src.api.schemas import (
    ActivityCreate,
    ActivityListResponse,
    ActivityResponse,
    PaginationResponse,
)
from src.db.connection import get_db
from src.db.models import ActivityType, UserActivityLog
from src.errors import ValidationError
from src.services.activity_service import ActivityService
from src.utils.time_window import Clock

router = APIRouter(prefix="/users/me/activity", tags=["activity"])

# Entries the server writes itself; clients may not forge them.
_SERVER_ONLY = {
    ActivityType.USER_REGISTERED,
    ActivityType.FIRST_SOURCE_CONFIGURED_SUCCESSFULLY,
    ActivityType.SOURCE_ADDED,
    ActivityType.SOURCE_DELETED,
    ActivityType.SENTIMENT_CORRECTED,
    ActivityType.MANUAL_REFRESH_TRIGGERED,
}


def _to_response(entry: UserActivityLog) -> ActivityResponse:
    return ActivityResponse(
        id=entry.id,
        user_id=entry.user_id,
        activity_type=entry.activity_type,
        occurred_at=entry.occurred_at,
        metadata=entry.activity_metadata,
    )


@router.get("", response_model=ActivityListResponse)
def list_activity(
    page: int = Query(0),
    size: int | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ActivityListResponse:
    result = ActivityService(db).get_activity(user_id, page=page, size=size)
    p = result.pagination()
    return ActivityListResponse(
        activities=[_to_response(e) for e in result.items],
        pagination=PaginationResponse(
            current_page=p["currentPage"],
            page_size=p["pageSize"],
            total_items=p["totalItems"],
            total_pages=p["totalPages"],
            has_next=p["hasNext"],
            has_previous=p["hasPrevious"],
        ),
    )


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def log_activity(
    data: ActivityCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ActivityResponse:
    """Record a client-side action for the caller."""
    try:
        kind = ActivityType(data.activity_type.upper())
    except ValueError as e:
        raise ValidationError(f"Unknown activity type '{data.activity_type}'") from e
    if kind in _SERVER_ONLY:
        raise ValidationError(f"{kind.value} is recorded by the server")
    entry = ActivityService(db, clock=clock).log(user_id, kind, metadata=data.metadata)
    db.commit()
    return _to_response(entry)
