"""API routes for review sentiment corrections and their history.

Endpoints live under /api/v1/brands/{brand_id}/reviews/{review_id}.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.api.deps import get_clock, get_current_user_id
from src.api.schemas import (
    SentimentChangeResponse,
    SentimentHistoryResponse,
    SentimentUpdate,
    SentimentUpdateResponse,
)
from src.db.connection import get_db
from src.services.sentiment_audit import SentimentAuditTrail
from src.utils.time_window import Clock

router = APIRouter(prefix="/brands/{brand_id}/reviews", tags=["reviews"])


def _get_trail(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SentimentAuditTrail:
    return SentimentAuditTrail(db, clock=clock)


@router.patch("/{review_id}/sentiment", response_model=SentimentUpdateResponse)
def update_review_sentiment(
    brand_id: str,
    review_id: str,
    data: SentimentUpdate,
    user_id: str = Depends(get_current_user_id),
    trail: SentimentAuditTrail = Depends(_get_trail),
) -> SentimentUpdateResponse:
    """Correct a review's sentiment.

    Correcting to the current value is accepted and records nothing
    (changed=false).
    """
    result = trail.correct(review_id, user_id, data.sentiment.value, brand_id=brand_id)
    return SentimentUpdateResponse(
        review_id=result.review_id,
        changed=result.changed,
        previous_sentiment=result.previous_sentiment,
        sentiment=result.sentiment,
        change_id=result.change_id,
    )


@router.get("/{review_id}/sentiment-history", response_model=SentimentHistoryResponse)
def get_sentiment_history(
    brand_id: str,
    review_id: str,
    user_id: str = Depends(get_current_user_id),
    trail: SentimentAuditTrail = Depends(_get_trail),
) -> SentimentHistoryResponse:
    """All sentiment changes of a review, newest first."""
    changes = trail.history(review_id, brand_id=brand_id, user_id=user_id)
    return SentimentHistoryResponse(
        review_id=review_id,
        changes=[SentimentChangeResponse.model_validate(c) for c in changes],
    )
