"""Fixtures for service-layer tests."""

import os

import pytest
from sqlalchemy.orm import Session

from src.config import ReviewPulseConfig
from src.db.models import Brand, User
from src.services.review_source_service import ReviewSourceService
from tests.helpers import FixedClock, make_brand, make_user


@pytest.fixture
def owner(db: Session, clock: FixedClock) -> User:
    """FREE-plan user (one source allowed)."""
    return make_user(db, "owner@example.com", clock=clock)


@pytest.fixture
def brand(db: Session, owner: User, clock: FixedClock) -> Brand:
    return make_brand(db, owner, clock=clock)


@pytest.fixture
def premium_owner(db: Session, clock: FixedClock) -> User:
    return make_user(db, "premium@example.com", plan_type="PREMIUM", clock=clock)


@pytest.fixture
def premium_brand(db: Session, premium_owner: User, clock: FixedClock) -> Brand:
    return make_brand(db, premium_owner, "Premium Bakery", clock=clock)


@pytest.fixture
def credential_key() -> bytes:
    return os.urandom(32)


@pytest.fixture
def source_service(
    db: Session, clock: FixedClock, config: ReviewPulseConfig, credential_key: bytes
) -> ReviewSourceService:
    return ReviewSourceService(db, clock=clock, config=config, credential_key=credential_key)
