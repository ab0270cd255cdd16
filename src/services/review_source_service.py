"""Review source lifecycle: create, list, read, update, soft delete.

Creation is the quota-guarded path. One retried transaction reads the
brand with its version, counts the brand's live sources, runs the
SourceQuotaGuard, inserts the source with its first sync time, queues its
INITIAL import job and bumps the brand row. Of two racing creators only
one can commit the bump; the other replays, sees the new source and is
rejected by the guard.

The first source a brand ever gets also claims the brand's
first_source_configured_at stamp. The claim rides on the same versioned
brand update, so FIRST_SOURCE_CONFIGURED_SUCCESSFULLY is appended at most
once per brand, even after that source is deleted and another is added.

create_source owns its transaction (commits); update and delete flush
and leave committing to the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from src.config import ReviewPulseConfig, get_config
from src.db.connection import run_in_transaction
from src.db.models import AuthMethod, ReviewSource, SourceType, SyncJob
from src.db.visibility import active_sources
from src.errors import AccessDeniedError, NotFoundError, ValidationError
from src.services.activity_service import ActivityService
from src.services.brand_service import BrandService
from src.services.credential_encryption import (
    credential_aad,
    encrypt_credentials,
    get_or_create_key,
)
from src.services.source_quota import SourceKey, SourceQuotaGuard
from src.services.sync_job_service import SyncJobService
from src.services.sync_scheduler import SyncScheduler
from src.utils.time_window import Clock, utc_now

logger = logging.getLogger(__name__)

_MAX_EXTERNAL_ID_LENGTH = 255


@dataclass
class NewSource:
    """Validated input for create_source."""

    platform_type: str
    profile_url: str
    external_profile_id: str
    auth_method: str = AuthMethod.SCRAPING.value
    credentials: dict[str, Any] | None = field(default=None, repr=False)


@dataclass
class CreatedSource:
    source: ReviewSource
    first_source: bool
    initial_job: SyncJob | None = None


def _validate(new: NewSource) -> NewSource:
    try:
        platform = SourceType(new.platform_type.upper()).value
    except ValueError as e:
        raise ValidationError(f"Unknown platform type '{new.platform_type}'") from e
    try:
        auth = AuthMethod(new.auth_method.upper()).value
    except ValueError as e:
        raise ValidationError(f"Unknown auth method '{new.auth_method}'") from e

    external_id = (new.external_profile_id or "").strip()
    if not external_id:
        raise ValidationError("external_profile_id must not be blank")
    if len(external_id) > _MAX_EXTERNAL_ID_LENGTH:
        raise ValidationError(
            f"external_profile_id must be at most {_MAX_EXTERNAL_ID_LENGTH} characters"
        )
    url = _validate_url(new.profile_url)
    if new.credentials is not None and auth != AuthMethod.API.value:
        raise ValidationError("Credentials are only accepted with the API auth method")
    return NewSource(platform, url, external_id, auth, new.credentials)


def _validate_url(url: str | None) -> str:
    clean = (url or "").strip()
    if not clean.startswith(("http://", "https://")):
        raise ValidationError("profile_url must be an http(s) URL")
    return clean


class ReviewSourceService:
    """Orchestrates ownership, quota, scheduling and the ledger for sources."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utc_now,
        config: ReviewPulseConfig | None = None,
        credential_key: bytes | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.config = config or get_config()
        self._credential_key = credential_key
        self.brands = BrandService(db, clock=clock, plans=self.config.plans)
        self.guard = SourceQuotaGuard(db)
        self.scheduler = SyncScheduler(db, config=self.config.scheduling, clock=clock)
        self.ledger = ActivityService(db, clock=clock, pagination=self.config.pagination)
        self.jobs = SyncJobService(db, clock=clock, config=self.config)

    def _encrypt(self, brand_id: str, new: NewSource) -> str | None:
        if not new.credentials:
            return None
        if self._credential_key is None:
            self._credential_key = get_or_create_key()
        return encrypt_credentials(
            new.credentials,
            self._credential_key,
            aad=credential_aad(brand_id, new.platform_type, new.external_profile_id),
        )

    def create_source(
        self,
        brand_id: str,
        user_id: str,
        new: NewSource,
        attempts: int | None = None,
    ) -> CreatedSource:
        """Create a source under the owner's plan quota.

        Args:
            brand_id: Target brand.
            user_id: Acting user; must own the brand.
            new: Source attributes.
            attempts: Transaction attempts (defaults to config).

        Returns:
            The committed source, whether it was the brand's first, and the
            INITIAL sync job queued for it.

        Raises:
            ValidationError: Bad input.
            NotFoundError / AccessDeniedError: Brand lookup failed.
            QuotaExceededError: Plan limit reached.
            DuplicateResourceError: Same platform profile already configured.
            ConcurrentModificationError: Contention outlasted the attempts.
        """
        clean = _validate(new)
        key = SourceKey(brand_id, clean.platform_type, clean.external_profile_id)
        encrypted = self._encrypt(brand_id, clean)

        def _create() -> CreatedSource:
            now = self.clock()
            brand = self.brands.get_owned_brand(brand_id, user_id)
            owner = brand.owner
            count = self.guard.count_active_sources(brand.id)
            self.guard.try_create(
                brand.id, count, owner.max_sources_allowed, key, plan_type=owner.plan_type
            )

            source = ReviewSource(
                brand_id=brand.id,
                source_type=clean.platform_type,
                external_profile_id=clean.external_profile_id,
                profile_url=clean.profile_url,
                auth_method=clean.auth_method,
                is_active=True,
                credentials_encrypted=encrypted,
                next_scheduled_sync_at=self.scheduler.next_scheduled_sync_time(now),
                created_at=now,
                updated_at=now,
            )
            self.db.add(source)

            first_source = count == 0 and brand.first_source_configured_at is None
            if first_source:
                brand.first_source_configured_at = now
            brand.touch(now)
            self.db.flush()
            initial_job = self.jobs.create_initial_import_job(source.id)

            self.ledger.log_source_added(user_id, brand.id, source.id, source.source_type)
            if first_source:
                self.ledger.log_first_source_configured(
                    user_id, brand.id, source.id, source.source_type
                )
            return CreatedSource(
                source=source, first_source=first_source, initial_job=initial_job
            )

        created = run_in_transaction(
            self.db,
            _create,
            operation="create_review_source",
            attempts=attempts or self.config.scheduling.max_transaction_attempts,
        )
        logger.info(
            "Created review source %s (%s) for brand %s%s",
            created.source.id, created.source.source_type, brand_id,
            " [first source]" if created.first_source else "",
        )
        return created

    def list_sources(self, brand_id: str, user_id: str) -> list[ReviewSource]:
        brand = self.brands.get_owned_brand(brand_id, user_id)
        return list(
            self.db.scalars(
                active_sources()
                .where(ReviewSource.brand_id == brand.id)
                .order_by(ReviewSource.created_at, ReviewSource.id)
            ).all()
        )

    def get_source(self, brand_id: str, source_id: str, user_id: str) -> ReviewSource:
        """Resolve a live source of an owned brand.

        Raises:
            NotFoundError: Unknown brand or source.
            AccessDeniedError: The brand is someone else's, or the source
                belongs to a different brand.
        """
        brand = self.brands.get_owned_brand(brand_id, user_id)
        source = self.db.scalars(active_sources().where(ReviewSource.id == source_id)).first()
        if source is None:
            raise NotFoundError("ReviewSource", source_id)
        if source.brand_id != brand.id:
            raise AccessDeniedError("Review source does not belong to this brand")
        return source

    def update_source(
        self,
        brand_id: str,
        source_id: str,
        user_id: str,
        is_active: bool | None = None,
        profile_url: str | None = None,
    ) -> ReviewSource:
        source = self.get_source(brand_id, source_id, user_id)
        if is_active is not None:
            source.is_active = is_active
        if profile_url is not None:
            source.profile_url = _validate_url(profile_url)
        source.updated_at = self.clock()
        self.db.flush()
        logger.info("Updated review source %s", source_id)
        return source

    def delete_source(self, brand_id: str, source_id: str, user_id: str) -> ReviewSource:
        """Soft-delete a source, freeing its quota slot and compound key."""
        source = self.get_source(brand_id, source_id, user_id)
        now = self.clock()
        source.deleted_at = now
        source.updated_at = now
        self.db.flush()
        self.ledger.log_source_deleted(user_id, brand_id, source.id)
        logger.info("Soft-deleted review source %s of brand %s", source.id, brand_id)
        return source
