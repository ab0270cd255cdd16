"""Test helper utilities shared across test packages."""

from tests.helpers.clock import FixedClock
from tests.helpers.factories import add_review, google_source, make_brand, make_user

__all__ = [
    "FixedClock",
    "add_review",
    "google_source",
    "make_brand",
    "make_user",
]
