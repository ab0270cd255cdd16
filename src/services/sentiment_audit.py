"""Append-only audit trail for review sentiment.

Every change of a review's sentiment writes exactly one SentimentChange row
in the same transaction as the review update: both land or neither does.
Setting a review to the sentiment it already has writes nothing.

Concurrent writers are serialised by the review's version column. The
loser's flush fails, its transaction is rolled back and replayed against
the winner's committed value, so each row's old_sentiment is always the
value the change replaced.

Example:
    trail = SentimentAuditTrail(db)
    result = trail.correct(review.id, user.id, Sentiment.NEGATIVE, brand_id=brand.id)
    rows = trail.history(review.id)   # newest first
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.config import get_config
from src.db.connection import run_in_transaction
from src.db.models import (
    AppendOnlyViolation,
    Brand,
    ChangeReason,
    Review,
    ReviewSource,
    Sentiment,
    SentimentChange,
    User,
)
from src.db.visibility import active_reviews, active_users, not_deleted
from src.errors import AccessDeniedError, AuditIntegrityError, NotFoundError, ValidationError
from src.services.activity_service import ActivityService
from src.services.brand_service import BrandService
from src.utils.time_window import Clock, utc_now

logger = logging.getLogger(__name__)

MACHINE_REASONS = (ChangeReason.AI_INITIAL, ChangeReason.REPROCESSING)


@dataclass
class CorrectionResult:
    """Outcome of one sentiment write."""

    review_id: str
    changed: bool
    previous_sentiment: str
    sentiment: str
    change_id: int | None = None


@dataclass
class CorrectionStats:
    """Machine labels versus human corrections for one brand."""

    ai_initial: int
    reprocessing: int
    user_corrections: int

    @property
    def ai_accuracy_percentage(self) -> float | None:
        """Share of initial labels left uncorrected, or None without labels."""
        if not self.ai_initial:
            return None
        return max(0.0, (1.0 - self.user_corrections / self.ai_initial) * 100.0)


def _coerce_sentiment(value: Sentiment | str) -> Sentiment:
    try:
        return Sentiment(value)
    except ValueError as e:
        raise ValidationError(f"Unknown sentiment '{value}'") from e


class SentimentAuditTrail:
    """Sentiment writes with their audit rows, plus history reads."""

    def __init__(self, db: Session, clock: Clock = utc_now, attempts: int | None = None) -> None:
        self.db = db
        self.clock = clock
        self.attempts = attempts or get_config().scheduling.max_transaction_attempts

    def _load_review(self, review_id: str, brand_id: str | None = None, user_id: str | None = None) -> Review:
        """Resolve a visible review; with a user, that user must own its brand."""
        if brand_id is not None and user_id is not None:
            BrandService(self.db, clock=self.clock).get_owned_brand(brand_id, user_id)
        review = self.db.scalars(active_reviews().where(Review.id == review_id)).first()
        if review is None:
            raise NotFoundError("Review", review_id)
        if brand_id is None and user_id is None:
            return review

        owner_brand, owner_user = self.db.execute(
            select(Brand.id, Brand.user_id)
            .join(ReviewSource, ReviewSource.brand_id == Brand.id)
            .where(ReviewSource.id == review.source_id)
        ).one()
        if brand_id is not None and owner_brand != brand_id:
            raise AccessDeniedError("Review does not belong to this brand")
        if user_id is not None and owner_user != user_id:
            logger.warning("User %s denied access to review %s", user_id, review_id)
            raise AccessDeniedError("You do not have access to this review")
        return review

    def correct(
        self,
        review_id: str,
        actor_user_id: str,
        new_sentiment: Sentiment | str,
        brand_id: str | None = None,
    ) -> CorrectionResult:
        """Apply a human correction (USER_CORRECTION).

        Also appends SENTIMENT_CORRECTED to the actor's activity ledger in
        the same transaction.

        Raises:
            ValidationError: Unknown sentiment.
            NotFoundError: Unknown review, brand or actor.
            AccessDeniedError: The review or brand belongs to someone else.
            ConcurrentModificationError: Contention outlasted the attempts.
            AuditIntegrityError: The audit write could not be committed.
        """
        target = _coerce_sentiment(new_sentiment)
        if self.db.scalars(active_users().where(User.id == actor_user_id)).first() is None:
            raise NotFoundError("User", actor_user_id)
        return self._apply(review_id, target, ChangeReason.USER_CORRECTION, actor_user_id, brand_id)

    def record_machine_change(
        self,
        review_id: str,
        new_sentiment: Sentiment | str,
        reason: ChangeReason | str = ChangeReason.REPROCESSING,
        confidence: float | None = None,
    ) -> CorrectionResult:
        """Apply a machine-originated label change (no actor).

        Raises:
            ValidationError: Unknown sentiment, or a reason reserved for humans.
        """
        target = _coerce_sentiment(new_sentiment)
        try:
            why = ChangeReason(reason)
        except ValueError as e:
            raise ValidationError(f"Unknown change reason '{reason}'") from e
        if why not in MACHINE_REASONS:
            raise ValidationError(f"{why.value} requires an acting user; use correct()")
        return self._apply(review_id, target, why, None, None, confidence)

    def _apply(
        self,
        review_id: str,
        target: Sentiment,
        reason: ChangeReason,
        actor_user_id: str | None,
        brand_id: str | None,
        confidence: float | None = None,
    ) -> CorrectionResult:
        ledger = ActivityService(self.db, clock=self.clock)

        def _write() -> CorrectionResult:
            review = self._load_review(review_id, brand_id, actor_user_id)
            current = review.sentiment
            if current == target.value:
                logger.debug("Review %s already %s; nothing recorded", review_id, current)
                return CorrectionResult(review.id, False, current, current)

            now = self.clock()
            change = SentimentChange(
                review_id=review.id,
                old_sentiment=current,
                new_sentiment=target.value,
                change_reason=reason.value,
                changed_by_user_id=actor_user_id,
                changed_at=now,
            )
            self.db.add(change)
            review.sentiment = target.value
            review.updated_at = now
            if confidence is not None:
                review.sentiment_confidence = confidence
            try:
                self.db.flush()
            except StaleDataError:
                raise
            except (IntegrityError, AppendOnlyViolation) as e:
                logger.error("Audit write for review %s aborted: %s", review_id, e)
                raise AuditIntegrityError(review_id, type(e).__name__) from e

            if reason is ChangeReason.USER_CORRECTION:
                ledger.log_sentiment_correction(actor_user_id, review.id, current, target.value)
            return CorrectionResult(review.id, True, current, target.value, change.id)

        result = run_in_transaction(
            self.db, _write, operation="sentiment_change", attempts=self.attempts
        )
        if result.changed:
            logger.info(
                "Review %s sentiment %s -> %s (%s)",
                review_id, result.previous_sentiment, result.sentiment, reason.value,
            )
        return result

    def history(
        self, review_id: str, brand_id: str | None = None, user_id: str | None = None
    ) -> list[SentimentChange]:
        """All changes for a review, newest first (ties by insertion order)."""
        self._load_review(review_id, brand_id, user_id)
        return list(
            self.db.scalars(
                select(SentimentChange)
                .where(SentimentChange.review_id == review_id)
                .order_by(SentimentChange.changed_at.desc(), SentimentChange.id.desc())
            ).all()
        )

    def previous_sentiment(self, review_id: str) -> str | None:
        """Sentiment the most recent change replaced, or None without history."""
        return self.db.scalar(
            select(SentimentChange.old_sentiment)
            .where(SentimentChange.review_id == review_id)
            .order_by(SentimentChange.changed_at.desc(), SentimentChange.id.desc())
            .limit(1)
        )

    def correction_stats(self, brand_id: str) -> CorrectionStats:
        """Count audit rows per reason across a brand's visible reviews."""
        visible = (
            select(Review.id)
            .join(ReviewSource, Review.source_id == ReviewSource.id)
            .join(Brand, ReviewSource.brand_id == Brand.id)
            .where(
                ReviewSource.brand_id == brand_id,
                not_deleted(Review),
                not_deleted(ReviewSource),
                not_deleted(Brand),
            )
        )
        counts = self.db.execute(
            select(
                func.count(case((SentimentChange.change_reason == ChangeReason.AI_INITIAL.value, 1))),
                func.count(case((SentimentChange.change_reason == ChangeReason.REPROCESSING.value, 1))),
                func.count(case((SentimentChange.change_reason == ChangeReason.USER_CORRECTION.value, 1))),
            ).where(SentimentChange.review_id.in_(visible))
        ).one()
        return CorrectionStats(ai_initial=counts[0], reprocessing=counts[1], user_corrections=counts[2])
