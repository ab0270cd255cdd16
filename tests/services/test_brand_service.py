"""Tests for BrandService: registration, brand creation, ownership, deletion."""

import pytest
from sqlalchemy import event, select
from sqlalchemy.orm import Session

from src.config import PlanConfig
from src.db.models import ActivityType, Brand, ReviewSource, User
from src.errors import (
    AccessDeniedError,
    ConflictError,
    DuplicateBrandError,
    NotFoundError,
    ValidationError,
)
from src.services.activity_service import ActivityService
from src.services.brand_service import BrandService
from tests.helpers import google_source, make_user


@pytest.fixture
def brands(db: Session, clock) -> BrandService:
    return BrandService(db, clock=clock, plans=PlanConfig())


class TestRegisterUser:
    def test_free_plan_defaults(self, db: Session, brands, clock):
        user = brands.register_user("  New.Owner@Example.com ")
        db.commit()
        assert user.email == "new.owner@example.com"
        assert user.plan_type == "FREE"
        assert user.max_sources_allowed == 1
        assert user.created_at == clock()
        assert ActivityService(db).count_of_type(user.id, ActivityType.USER_REGISTERED) == 1

    def test_premium_plan_quota(self, brands):
        assert brands.register_user("p@example.com", plan_type="PREMIUM").max_sources_allowed == 10

    def test_explicit_quota_override(self, brands):
        assert brands.register_user("o@example.com", max_sources_allowed=3).max_sources_allowed == 3

    def test_duplicate_email_case_insensitive(self, db: Session, brands):
        brands.register_user("dup@example.com")
        with pytest.raises(ConflictError):
            brands.register_user("DUP@example.com")

    def test_racing_registration_is_a_conflict(self, file_sessions, clock):
        """The email is committed elsewhere between the lookup and the insert."""
        session_a, session_b = file_sessions(), file_sessions()
        fired = []

        def _competitor_commits_first(session, flush_context, instances):
            if not fired:
                fired.append(True)
                BrandService(session_b, clock=clock, plans=PlanConfig()).register_user(
                    "race@example.com"
                )
                session_b.commit()

        event.listen(session_a, "before_flush", _competitor_commits_first)
        try:
            with pytest.raises(ConflictError, match="already registered"):
                BrandService(session_a, clock=clock, plans=PlanConfig()).register_user(
                    "race@example.com"
                )
        finally:
            session_a.close()
            session_b.close()

        check = file_sessions()
        assert check.scalars(select(User.email)).all() == ["race@example.com"]
        check.close()

    @pytest.mark.parametrize(
        "email,plan,quota",
        [("not-an-email", "FREE", None), ("x@example.com", "GOLD", None), ("y@example.com", "FREE", 0)],
    )
    def test_invalid_registration(self, brands, email, plan, quota):
        with pytest.raises(ValidationError):
            brands.register_user(email, plan_type=plan, max_sources_allowed=quota)


class TestBrands:
    def test_create_and_find(self, db: Session, brands, owner):
        brand = brands.create_brand(owner.id, "  Cafe Lumiere ")
        assert brand.name == "Cafe Lumiere"
        assert brand.version == 1
        assert brands.get_brand_for_user(owner.id).id == brand.id

    def test_one_brand_per_user(self, brands, owner, brand):
        with pytest.raises(DuplicateBrandError):
            brands.create_brand(owner.id, "Second")

    def test_blank_name_rejected(self, brands, owner):
        with pytest.raises(ValidationError):
            brands.create_brand(owner.id, "   ")

    def test_unknown_user(self, brands):
        with pytest.raises(NotFoundError):
            brands.create_brand("nobody", "Brand")

    def test_no_brand_yet(self, brands, owner):
        assert brands.find_brand_for_user(owner.id) is None
        with pytest.raises(NotFoundError):
            brands.get_brand_for_user(owner.id)

    def test_ownership(self, db: Session, brands, brand, owner, clock):
        assert brands.get_owned_brand(brand.id, owner.id).id == brand.id
        stranger = make_user(db, "stranger@example.com", clock=clock)
        with pytest.raises(AccessDeniedError):
            brands.get_owned_brand(brand.id, stranger.id)
        with pytest.raises(NotFoundError):
            brands.get_owned_brand("missing", owner.id)


class TestDeleteBrand:
    def test_soft_deletes_brand_and_sources(
        self, db: Session, brands, source_service, owner, brand, clock
    ):
        source = source_service.create_source(brand.id, owner.id, google_source()).source
        brands.delete_brand(brand.id, owner.id)
        db.commit()

        assert db.get(Brand, brand.id).deleted_at == clock()
        assert db.scalar(select(ReviewSource.deleted_at).where(ReviewSource.id == source.id)) == clock()
        with pytest.raises(NotFoundError):
            brands.get_owned_brand(brand.id, owner.id)

    def test_new_brand_after_delete(self, db: Session, brands, owner, brand):
        brands.delete_brand(brand.id, owner.id)
        db.commit()
        replacement = brands.create_brand(owner.id, "Second Life")
        assert replacement.id != brand.id
