"""API routes for success metrics.

GET /api/v1/users/me/metrics reports the caller's funnel;
GET /api/v1/admin/metrics/success aggregates a registration cohort.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.api.deps import get_current_user_id
from src.api.schemas import GlobalSuccessMetricsResponse, UserSuccessMetricsResponse
from src.db.connection import get_db
from src.services.success_metrics import SuccessMetricsService

router = APIRouter(tags=["metrics"])


@router.get("/users/me/metrics", response_model=UserSuccessMetricsResponse)
def get_my_metrics(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> UserSuccessMetricsResponse:
    m = SuccessMetricsService(db).user_success_metrics(user_id)
    return UserSuccessMetricsResponse(
        user_id=m.user_id,
        registration_date=m.registered_at,
        time_to_value_minutes=m.time_to_value_minutes,
        time_to_value_achieved=m.time_to_value_achieved,
        activation_achieved=m.activation_achieved,
        retention_achieved=m.retention_achieved,
        total_logins=m.total_logins,
        sentiment_corrections=m.sentiment_corrections,
    )


@router.get("/admin/metrics/success", response_model=GlobalSuccessMetricsResponse)
def get_global_metrics(
    start: datetime = Query(..., description="Cohort start (ISO 8601 with offset)"),
    end: datetime = Query(..., description="Cohort end (ISO 8601 with offset)"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> GlobalSuccessMetricsResponse:
    """Metrics for users who registered between start and end."""
    m = SuccessMetricsService(db).global_success_metrics(start, end)
    return GlobalSuccessMetricsResponse(
        period_start=m.period_start,
        period_end=m.period_end,
        total_users=m.total_users,
        time_to_value_achieved_count=m.time_to_value_achieved_count,
        time_to_value_achieved_percentage=m.time_to_value_achieved_percentage,
        average_time_to_value_minutes=m.average_time_to_value_minutes,
        activation_achieved_count=m.activation_achieved_count,
        activation_achieved_percentage=m.activation_achieved_percentage,
        retention_achieved_count=m.retention_achieved_count,
        retention_achieved_percentage=m.retention_achieved_percentage,
    )
