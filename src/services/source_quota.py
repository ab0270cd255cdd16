"""Plan-quota and duplicate checks for new review sources.

The guard is the single decision point for whether a brand may gain
another source. The quota rule is evaluated before the duplicate rule, so
a brand at its limit reports the limit even when the candidate is also a
duplicate.

The checks themselves are not atomic with the insert. Callers run them
inside run_in_transaction together with the insert and a brand version
bump (see ReviewSourceService.create_source); a concurrent winner then
forces a replay in which these checks see the winner's row.

Example:
    guard = SourceQuotaGuard(db)
    key = SourceKey(brand.id, "GOOGLE", "place-123")
    guard.try_create(brand.id, guard.count_active_sources(brand.id), 1, key)
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from src.db.models import PlanType, ReviewSource
from src.db.visibility import active_sources, count_active_sources_stmt
from src.errors import DuplicateResourceError, QuotaExceededError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceKey:
    """Compound identity of a source within a brand."""

    brand_id: str
    platform_type: str
    external_profile_id: str


def check_quota(active_source_count: int, max_allowed: int, plan_type: str) -> None:
    """Raise QuotaExceededError when no slot is left."""
    if active_source_count >= max_allowed:
        raise QuotaExceededError(active_source_count, max_allowed, plan_type)


class SourceQuotaGuard:
    """Accepts or rejects a candidate source for a brand."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def count_active_sources(self, brand_id: str) -> int:
        """Number of non-deleted sources on a live brand."""
        return self.db.scalar(count_active_sources_stmt(brand_id)) or 0

    def find_duplicate(self, key: SourceKey) -> ReviewSource | None:
        """Live source with the same compound key, if any."""
        return self.db.scalars(
            active_sources().where(
                ReviewSource.brand_id == key.brand_id,
                ReviewSource.source_type == key.platform_type,
                ReviewSource.external_profile_id == key.external_profile_id,
            )
        ).first()

    def try_create(
        self,
        brand_id: str,
        active_source_count: int,
        max_allowed: int,
        candidate_key: SourceKey,
        plan_type: str = PlanType.FREE.value,
    ) -> None:
        """Validate a candidate source against quota then duplicates.

        Args:
            brand_id: Brand receiving the source.
            active_source_count: Current count of the brand's live sources.
            max_allowed: Owner's plan limit.
            candidate_key: Compound key of the candidate.
            plan_type: Owner's plan, reported on rejection.

        Raises:
            ValidationError: The key names another brand.
            QuotaExceededError: active_source_count >= max_allowed.
            DuplicateResourceError: A live source already has this key.
        """
        if candidate_key.brand_id != brand_id:
            raise ValidationError("Candidate source key belongs to a different brand")

        try:
            check_quota(active_source_count, max_allowed, plan_type)
        except QuotaExceededError:
            logger.warning(
                "Brand %s at source limit (%d/%d, %s plan)",
                brand_id, active_source_count, max_allowed, plan_type,
            )
            raise

        if self.find_duplicate(candidate_key) is not None:
            logger.warning(
                "Brand %s already has source %s:%s",
                brand_id, candidate_key.platform_type, candidate_key.external_profile_id,
            )
            raise DuplicateResourceError(
                brand_id, candidate_key.platform_type, candidate_key.external_profile_id
            )
