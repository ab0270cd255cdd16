"""Shared FastAPI dependencies.

Token verification happens upstream of this service; the gateway forwards
the authenticated user id in the X-User-Id header.
"""

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from src.db.connection import get_db
from src.errors import ValidationError
from src.services.brand_service import BrandService
from src.utils.time_window import Clock, utc_now


def get_current_user_id(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the acting user from the X-User-Id header.

    Raises:
        ValidationError: Header missing or blank.
        NotFoundError: No live user with that id.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise ValidationError("X-User-Id header is required")
    BrandService(db).get_user(user_id)
    return user_id


def get_clock() -> Clock:
    """Clock used by request handlers (overridden in tests)."""
    return utc_now
