"""Brand and account lifecycle.

Owns user registration (the ledger's USER_REGISTERED entry included),
brand creation (one live brand per user), ownership resolution and soft
delete. Every other service resolves brands through get_owned_brand so
NotFound and AccessDenied are decided in one place.

Methods do NOT call db.commit(); the caller commits. The exception is
create_brand, which owns a retried transaction.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import PlanConfig, get_config
from src.db.connection import run_in_transaction
from src.db.models import Brand, PlanType, ReviewSource, User
from src.db.visibility import active_brands, active_users, not_deleted
from src.errors import (
    AccessDeniedError,
    ConflictError,
    DuplicateBrandError,
    NotFoundError,
    ValidationError,
)
from src.services.activity_service import ActivityService
from src.utils.time_window import Clock, utc_now

logger = logging.getLogger(__name__)


class BrandService:
    """Users, brands and ownership checks."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utc_now,
        plans: PlanConfig | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.plans = plans or get_config().plans
        self.ledger = ActivityService(db, clock=clock)

    def register_user(
        self,
        email: str,
        plan_type: PlanType | str = PlanType.FREE,
        max_sources_allowed: int | None = None,
    ) -> User:
        """Create a user and append USER_REGISTERED.

        Args:
            email: Login email (unique, case-insensitive).
            plan_type: FREE or PREMIUM.
            max_sources_allowed: Override of the plan's default quota.

        Raises:
            ValidationError: Bad email, plan or quota.
            ConflictError: Email already registered, including by a racing
                registration; the session is rolled back in that case.
        """
        clean_email = email.strip().lower()
        if "@" not in clean_email:
            raise ValidationError(f"Invalid email address: '{email}'")
        try:
            plan = PlanType(plan_type)
        except ValueError as e:
            raise ValidationError(f"Unknown plan type '{plan_type}'") from e
        quota = max_sources_allowed if max_sources_allowed is not None else self.plans.max_sources_for(plan.value)
        if quota < 1:
            raise ValidationError("max_sources_allowed must be at least 1")

        existing = self.db.scalars(select(User).where(User.email == clean_email)).first()
        if existing is not None:
            raise ConflictError(f"Email '{clean_email}' is already registered")

        user = User(
            email=clean_email,
            plan_type=plan.value,
            max_sources_allowed=quota,
            created_at=self.clock(),
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as e:
            # A concurrent registration committed the same email after the check.
            self.db.rollback()
            if self.db.scalars(select(User.id).where(User.email == clean_email)).first():
                raise ConflictError(f"Email '{clean_email}' is already registered") from e
            raise
        self.ledger.log_registration(user.id, clean_email)
        logger.info("Registered user %s on %s plan (quota %d)", user.id, plan.value, quota)
        return user

    def get_user(self, user_id: str) -> User:
        user = self.db.scalars(active_users().where(User.id == user_id)).first()
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def create_brand(self, user_id: str, name: str, attempts: int | None = None) -> Brand:
        """Create the user's brand in its own committed transaction.

        A racing creator for the same user loses on the partial unique
        index; the replay then finds the winner's brand.

        Raises:
            NotFoundError: Unknown user.
            ValidationError: Blank name.
            DuplicateBrandError: The user already owns a live brand.
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Brand name must not be blank")
        if len(clean_name) > 255:
            raise ValidationError("Brand name must be at most 255 characters")

        def _create() -> Brand:
            self.get_user(user_id)
            if self.find_brand_for_user(user_id) is not None:
                raise DuplicateBrandError(user_id)
            now = self.clock()
            brand = Brand(user_id=user_id, name=clean_name, created_at=now, updated_at=now)
            self.db.add(brand)
            self.db.flush()
            return brand

        brand = run_in_transaction(
            self.db,
            _create,
            operation="create_brand",
            attempts=attempts or get_config().scheduling.max_transaction_attempts,
        )
        logger.info("Created brand %s for user %s", brand.id, user_id)
        return brand

    def find_brand_for_user(self, user_id: str) -> Brand | None:
        return self.db.scalars(active_brands().where(Brand.user_id == user_id)).first()

    def get_brand_for_user(self, user_id: str) -> Brand:
        brand = self.find_brand_for_user(user_id)
        if brand is None:
            raise NotFoundError("Brand", f"owned by {user_id}")
        return brand

    def get_owned_brand(self, brand_id: str, user_id: str) -> Brand:
        """Resolve a live brand and check that user_id owns it.

        Raises:
            NotFoundError: No live brand with this id.
            AccessDeniedError: The brand belongs to someone else.
        """
        brand = self.db.scalars(active_brands().where(Brand.id == brand_id)).first()
        if brand is None:
            raise NotFoundError("Brand", brand_id)
        if brand.user_id != user_id:
            logger.warning("User %s denied access to brand %s", user_id, brand_id)
            raise AccessDeniedError("You do not have access to this brand")
        return brand

    def delete_brand(self, brand_id: str, user_id: str) -> Brand:
        """Soft-delete a brand together with its live sources."""
        brand = self.get_owned_brand(brand_id, user_id)
        now = self.clock()
        self.db.execute(
            update(ReviewSource)
            .where(ReviewSource.brand_id == brand.id, not_deleted(ReviewSource))
            .values(deleted_at=now, updated_at=now)
        )
        brand.deleted_at = now
        brand.updated_at = now
        self.db.flush()
        logger.info("Soft-deleted brand %s and its sources", brand.id)
        return brand
