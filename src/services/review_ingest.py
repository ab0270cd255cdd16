"""Storage side of review ingestion.

The fetch pipeline (platform API clients, scrapers, the sentiment model)
hands over already-fetched reviews; this service persists them. A review
is skipped when its source already holds the same external review id, or
the same normalised content under another id (platforms re-publish edited
reviews with fresh ids). Each stored review gets its AI_INITIAL audit row
in the same flush.

Example:
    result = ReviewIngestService(db).ingest(source.id, fetched_reviews)
    db.commit()
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import ChangeReason, Review, ReviewSource, Sentiment, SentimentChange
from src.db.visibility import active_sources
from src.errors import NotFoundError, ValidationError
from src.utils.content_hash import content_hash, normalize_content
from src.utils.time_window import Clock, ensure_aware, utc_now

logger = logging.getLogger(__name__)


@dataclass
class FetchedReview:
    """One review as delivered by the fetch pipeline."""

    external_review_id: str
    rating: int
    sentiment: Sentiment | str
    content: str | None = None
    author_name: str | None = None
    published_at: datetime | None = None
    sentiment_confidence: float | None = None


@dataclass
class IngestResult:
    source_id: str
    created: list[Review] = field(default_factory=list)
    skipped_existing: int = 0
    skipped_duplicate_content: int = 0

    @property
    def created_count(self) -> int:
        return len(self.created)


def _check(fetched: FetchedReview) -> Sentiment:
    if not (fetched.external_review_id or "").strip():
        raise ValidationError("external_review_id must not be blank")
    if not 1 <= fetched.rating <= 5:
        raise ValidationError(
            f"Rating must be between 1 and 5, got {fetched.rating} "
            f"for review '{fetched.external_review_id}'"
        )
    try:
        return Sentiment(fetched.sentiment)
    except ValueError as e:
        raise ValidationError(f"Unknown sentiment '{fetched.sentiment}'") from e


class ReviewIngestService:
    """Deduplicating writer for fetched reviews.

    Does NOT commit; the caller (the sync sweep) commits together with the
    sync outcome.
    """

    def __init__(self, db: Session, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def ingest(self, source_id: str, reviews: Iterable[FetchedReview]) -> IngestResult:
        """Persist new reviews for a live source.

        Raises:
            NotFoundError: Unknown or soft-deleted source.
            ValidationError: A review with a blank id, bad rating or sentiment.
        """
        source = self.db.scalars(active_sources().where(ReviewSource.id == source_id)).first()
        if source is None:
            raise NotFoundError("ReviewSource", source_id)

        known_ids = set(
            self.db.scalars(select(Review.external_review_id).where(Review.source_id == source_id))
        )
        known_hashes = set(
            self.db.scalars(
                select(Review.content_hash).where(
                    Review.source_id == source_id, Review.deleted_at.is_(None)
                )
            )
        )

        # Validate the whole batch before writing any of it.
        batch = [(fetched, _check(fetched)) for fetched in reviews]
        result = IngestResult(source_id=source_id)
        now = self.clock()
        for fetched, sentiment in batch:
            external_id = fetched.external_review_id.strip()
            if external_id in known_ids:
                result.skipped_existing += 1
                continue

            digest = content_hash(fetched.content)
            # Empty texts all hash alike; only real text counts as duplicate content.
            if normalize_content(fetched.content) and digest in known_hashes:
                result.skipped_duplicate_content += 1
                known_ids.add(external_id)
                continue

            review = Review(
                source_id=source_id,
                external_review_id=external_id,
                content=fetched.content,
                content_hash=digest,
                author_name=fetched.author_name,
                rating=fetched.rating,
                sentiment=sentiment.value,
                sentiment_confidence=fetched.sentiment_confidence,
                published_at=(
                    ensure_aware(fetched.published_at, "published_at")
                    if fetched.published_at
                    else None
                ),
                created_at=now,
                updated_at=now,
            )
            self.db.add(review)
            self.db.flush()
            self.db.add(
                SentimentChange(
                    review_id=review.id,
                    old_sentiment=sentiment.value,
                    new_sentiment=sentiment.value,
                    change_reason=ChangeReason.AI_INITIAL.value,
                    changed_by_user_id=None,
                    changed_at=now,
                )
            )
            known_ids.add(external_id)
            known_hashes.add(digest)
            result.created.append(review)

        self.db.flush()
        logger.info(
            "Ingested %d review(s) for source %s (%d known, %d duplicate content)",
            result.created_count, source_id,
            result.skipped_existing, result.skipped_duplicate_content,
        )
        return result
