"""Active-view query builders for soft-deleted entities.

Every read path for brands, users, sources, reviews and sync jobs starts
from one of these selects. A row is visible only if it and every owner
above it are not soft-deleted, so a deleted brand hides its sources,
reviews and sync jobs without touching their rows.

Example:
    stmt = active_sources().where(ReviewSource.brand_id == brand_id)
    sources = db.scalars(stmt).all()
"""

from sqlalchemy import Select, func, select
from sqlalchemy.sql.elements import ColumnElement

from src.db.models import Brand, Review, ReviewSource, SyncJob, User


def not_deleted(model: type) -> ColumnElement[bool]:
    """The shared predicate: the entity's soft-delete marker is unset."""
    return model.deleted_at.is_(None)


def active_users() -> Select:
    """Users that are not soft-deleted."""
    return select(User).where(not_deleted(User))


def active_brands() -> Select:
    """Brands that are not soft-deleted and whose owner is not soft-deleted."""
    return (
        select(Brand)
        .join(User, Brand.user_id == User.id)
        .where(not_deleted(Brand), not_deleted(User))
    )


def active_sources() -> Select:
    """Sources visible through a live brand."""
    return (
        select(ReviewSource)
        .join(Brand, ReviewSource.brand_id == Brand.id)
        .where(not_deleted(ReviewSource), not_deleted(Brand))
    )


def active_reviews() -> Select:
    """Reviews visible through a live source and brand."""
    return (
        select(Review)
        .join(ReviewSource, Review.source_id == ReviewSource.id)
        .join(Brand, ReviewSource.brand_id == Brand.id)
        .where(not_deleted(Review), not_deleted(ReviewSource), not_deleted(Brand))
    )


def active_sync_jobs() -> Select:
    """Sync jobs of sources visible through a live brand."""
    return (
        select(SyncJob)
        .join(ReviewSource, SyncJob.source_id == ReviewSource.id)
        .join(Brand, ReviewSource.brand_id == Brand.id)
        .where(not_deleted(ReviewSource), not_deleted(Brand))
    )


def count_active_sources_stmt(brand_id: str) -> Select:
    """Count of a brand's visible sources (the quota numerator)."""
    return (
        select(func.count(ReviewSource.id))
        .join(Brand, ReviewSource.brand_id == Brand.id)
        .where(
            ReviewSource.brand_id == brand_id,
            not_deleted(ReviewSource),
            not_deleted(Brand),
        )
    )
