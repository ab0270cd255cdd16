"""Tests for SourceQuotaGuard: quota first, duplicates second."""

import pytest
from sqlalchemy.orm import Session

from src.db.models import Brand
from src.errors import DuplicateResourceError, QuotaExceededError, ValidationError
from src.services.source_quota import SourceKey, SourceQuotaGuard, check_quota
from tests.helpers import google_source


def test_check_quota_allows_below_limit():
    check_quota(0, 1, "FREE")
    check_quota(9, 10, "PREMIUM")


@pytest.mark.parametrize("count,limit", [(1, 1), (2, 1), (10, 10)])
def test_check_quota_rejects_at_or_above_limit(count, limit):
    with pytest.raises(QuotaExceededError) as exc_info:
        check_quota(count, limit, "FREE")
    assert exc_info.value.current_count == count
    assert exc_info.value.max_allowed == limit


class TestTryCreate:
    def test_accepts_first_source(self, db: Session, brand: Brand):
        guard = SourceQuotaGuard(db)
        guard.try_create(brand.id, 0, 1, SourceKey(brand.id, "GOOGLE", "place-1"))

    def test_rejects_when_plan_full(self, db: Session, brand: Brand, source_service, owner):
        source_service.create_source(brand.id, owner.id, google_source("place-1"))
        guard = SourceQuotaGuard(db)
        count = guard.count_active_sources(brand.id)
        with pytest.raises(QuotaExceededError) as exc_info:
            guard.try_create(brand.id, count, 1, SourceKey(brand.id, "FACEBOOK", "page-1"))
        assert exc_info.value.current_count == 1
        assert exc_info.value.max_allowed == 1
        assert exc_info.value.plan_type == "FREE"

    def test_quota_is_checked_before_duplicates(
        self, db: Session, brand: Brand, source_service, owner
    ):
        source_service.create_source(brand.id, owner.id, google_source("place-1"))
        guard = SourceQuotaGuard(db)
        with pytest.raises(QuotaExceededError):
            guard.try_create(brand.id, 1, 1, SourceKey(brand.id, "GOOGLE", "place-1"))

    def test_rejects_duplicate_key_under_quota(
        self, db: Session, premium_brand: Brand, source_service, premium_owner
    ):
        source_service.create_source(premium_brand.id, premium_owner.id, google_source("place-1"))
        guard = SourceQuotaGuard(db)
        with pytest.raises(DuplicateResourceError) as exc_info:
            guard.try_create(
                premium_brand.id, 1, 10, SourceKey(premium_brand.id, "GOOGLE", "place-1"), "PREMIUM"
            )
        assert exc_info.value.external_profile_id == "place-1"

    def test_deleted_sources_neither_count_nor_collide(
        self, db: Session, brand: Brand, source_service, owner
    ):
        created = source_service.create_source(brand.id, owner.id, google_source("place-1"))
        source_service.delete_source(brand.id, created.source.id, owner.id)
        db.commit()
        guard = SourceQuotaGuard(db)
        assert guard.count_active_sources(brand.id) == 0
        assert guard.find_duplicate(SourceKey(brand.id, "GOOGLE", "place-1")) is None
        guard.try_create(brand.id, 0, 1, SourceKey(brand.id, "GOOGLE", "place-1"))

    def test_key_for_other_brand_rejected(self, db: Session, brand: Brand):
        with pytest.raises(ValidationError):
            SourceQuotaGuard(db).try_create(brand.id, 0, 1, SourceKey("other", "GOOGLE", "p"))

    def test_rejection_is_logged(self, db: Session, brand: Brand, caplog):
        import logging

        with caplog.at_level(logging.WARNING, logger="src.services.source_quota"):
            with pytest.raises(QuotaExceededError):
                SourceQuotaGuard(db).try_create(brand.id, 1, 1, SourceKey(brand.id, "GOOGLE", "p"))
        assert any("at source limit" in m for m in caplog.messages)
