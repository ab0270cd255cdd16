"""Pure time-window arithmetic for sync scheduling and cooldowns.

Every function takes the current instant as an argument instead of reading
the system clock, so results are deterministic and testable across
timezones and DST transitions. Callers obtain "now" from an injected clock
(``utc_now`` by default).

Example:
    now = utc_now()
    next_sync = next_daily_occurrence(now, hour=3, tz_name="Europe/Paris")
    remaining = cooldown_remaining(brand.last_manual_refresh_at, now, timedelta(hours=24))
"""

from collections.abc import Callable
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.errors.domain import ValidationError

Clock = Callable[[], datetime]

ZERO = timedelta(0)


def utc_now() -> datetime:
    """Return the current instant as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_aware(value: datetime, name: str = "now") -> datetime:
    """Reject naive datetimes and normalise aware ones to UTC.

    Args:
        value: Datetime to check.
        name: Argument name used in the error message.

    Returns:
        The same instant expressed in UTC.

    Raises:
        ValidationError: If value carries no tzinfo.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"'{name}' must be timezone-aware, got naive {value!r}")
    return value.astimezone(UTC)


def resolve_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValidationError for unknown names."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone '{tz_name}'") from e


def next_daily_occurrence(now: datetime, hour: int, tz_name: str) -> datetime:
    """Return the next occurrence of a fixed wall-clock hour as a UTC instant.

    The hour is interpreted in the reference zone. If ``now`` is at or past
    today's occurrence, tomorrow's is returned, so the result is always
    strictly later than ``now``. Wall-clock times that do not exist on a DST
    spring-forward day resolve to the equivalent instant after the gap.

    Args:
        now: Current instant (timezone-aware).
        hour: Wall-clock hour, 0-23.
        tz_name: IANA zone name of the reference timezone.

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        ValidationError: If now is naive, hour is out of range or the zone is unknown.
    """
    if not 0 <= hour <= 23:
        raise ValidationError(f"Hour must be between 0 and 23, got {hour}")
    now_utc = ensure_aware(now)
    zone = resolve_zone(tz_name)
    local_date = now_utc.astimezone(zone).date()

    for day_offset in (0, 1, 2):
        candidate_date = local_date + timedelta(days=day_offset)
        candidate = datetime.combine(candidate_date, time(hour=hour), tzinfo=zone)
        # Round-trip through UTC so nonexistent local times land after the gap.
        candidate_utc = candidate.astimezone(UTC)
        if candidate_utc > now_utc:
            return candidate_utc
    # Unreachable for any real zone: two calendar days always contain a later occurrence.
    raise ValidationError(f"Could not compute next {hour:02d}:00 in {tz_name}")


def cooldown_remaining(
    last_event_at: datetime | None,
    now: datetime,
    cooldown: timedelta,
) -> timedelta:
    """Return how long until the cooldown after ``last_event_at`` expires.

    Never negative: zero when the cooldown has elapsed or no event happened.
    """
    if last_event_at is None:
        return ZERO
    elapsed = ensure_aware(now) - ensure_aware(last_event_at, "last_event_at")
    remaining = cooldown - elapsed
    return remaining if remaining > ZERO else ZERO


def cooldown_elapsed(
    last_event_at: datetime | None,
    now: datetime,
    cooldown: timedelta,
) -> bool:
    """True when no event happened yet or at least ``cooldown`` has passed since it."""
    return cooldown_remaining(last_event_at, now, cooldown) == ZERO


def next_allowed_at(
    last_event_at: datetime | None,
    now: datetime,
    cooldown: timedelta,
) -> datetime:
    """Return the earliest instant at which the cooldown permits the next event."""
    return ensure_aware(now) + cooldown_remaining(last_event_at, now, cooldown)


def within_window(start: datetime, moment: datetime, window: timedelta) -> bool:
    """True if ``moment`` falls in the closed interval [start, start + window]."""
    return start <= moment <= start + window
