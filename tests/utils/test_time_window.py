"""Tests for src/utils/time_window.py."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from src.errors import ValidationError
from src.utils.time_window import (
    ZERO,
    cooldown_elapsed,
    cooldown_remaining,
    ensure_aware,
    next_allowed_at,
    next_daily_occurrence,
    within_window,
)

PARIS = "Europe/Paris"


class TestNextDailyOccurrence:
    """03:00 Europe/Paris schedule across the year."""

    def test_after_todays_slot_returns_tomorrow(self):
        now = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)  # 10:00 CET
        assert next_daily_occurrence(now, 3, PARIS) == datetime(2026, 3, 11, 2, 0, tzinfo=UTC)

    def test_before_todays_slot_returns_today(self):
        now = datetime(2026, 3, 10, 1, 30, tzinfo=UTC)  # 02:30 CET
        assert next_daily_occurrence(now, 3, PARIS) == datetime(2026, 3, 10, 2, 0, tzinfo=UTC)

    def test_exactly_at_slot_is_strictly_later(self):
        now = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)  # 03:00 CET exactly
        result = next_daily_occurrence(now, 3, PARIS)
        assert result > now
        assert result == datetime(2026, 3, 11, 2, 0, tzinfo=UTC)

    def test_summer_time_uses_cest_offset(self):
        now = datetime(2026, 7, 1, 12, 0, tzinfo=UTC)
        assert next_daily_occurrence(now, 3, PARIS) == datetime(2026, 7, 2, 1, 0, tzinfo=UTC)

    def test_spring_forward_day(self):
        """29 March 2026: 03:00 local already is CEST (UTC+2)."""
        now = datetime(2026, 3, 28, 12, 0, tzinfo=UTC)
        assert next_daily_occurrence(now, 3, PARIS) == datetime(2026, 3, 29, 1, 0, tzinfo=UTC)

    def test_consecutive_syncs_across_spring_forward_are_23_hours_apart(self):
        first = next_daily_occurrence(datetime(2026, 3, 28, 0, 0, tzinfo=UTC), 3, PARIS)
        second = next_daily_occurrence(first, 3, PARIS)
        assert first == datetime(2026, 3, 28, 2, 0, tzinfo=UTC)
        assert second - first == timedelta(hours=23)

    def test_fall_back_day(self):
        """25 October 2026: 03:00 local is CET again (UTC+1)."""
        now = datetime(2026, 10, 24, 12, 0, tzinfo=UTC)
        assert next_daily_occurrence(now, 3, PARIS) == datetime(2026, 10, 25, 2, 0, tzinfo=UTC)

    def test_nonexistent_local_time_lands_after_gap(self):
        """02:00 does not exist in Paris on 29 March 2026."""
        now = datetime(2026, 3, 28, 23, 0, tzinfo=UTC)  # midnight local
        result = next_daily_occurrence(now, 2, PARIS)
        assert result == datetime(2026, 3, 29, 1, 0, tzinfo=UTC)
        assert result > now

    def test_non_utc_input_is_normalised(self):
        now = datetime(2026, 3, 10, 10, 0, tzinfo=timezone(timedelta(hours=1)))
        result = next_daily_occurrence(now, 3, PARIS)
        assert result.tzinfo == UTC
        assert result == datetime(2026, 3, 11, 2, 0, tzinfo=UTC)

    def test_is_deterministic(self):
        now = datetime(2026, 5, 5, 5, 5, tzinfo=UTC)
        assert next_daily_occurrence(now, 3, PARIS) == next_daily_occurrence(now, 3, PARIS)

    def test_naive_now_rejected(self):
        with pytest.raises(ValidationError, match="timezone-aware"):
            next_daily_occurrence(datetime(2026, 3, 10, 9, 0), 3, PARIS)

    @pytest.mark.parametrize("hour", [-1, 24])
    def test_hour_out_of_range_rejected(self, hour):
        with pytest.raises(ValidationError, match="between 0 and 23"):
            next_daily_occurrence(datetime(2026, 3, 10, tzinfo=UTC), hour, PARIS)

    def test_unknown_zone_rejected(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            next_daily_occurrence(datetime(2026, 3, 10, tzinfo=UTC), 3, "Mars/Olympus")


class TestCooldown:
    """Manual-refresh cooldown arithmetic."""

    COOLDOWN = timedelta(hours=24)
    NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

    def test_no_previous_event_means_no_wait(self):
        assert cooldown_remaining(None, self.NOW, self.COOLDOWN) == ZERO
        assert cooldown_elapsed(None, self.NOW, self.COOLDOWN) is True

    def test_23_hours_after_leaves_one_hour(self):
        last = self.NOW - timedelta(hours=23)
        assert cooldown_remaining(last, self.NOW, self.COOLDOWN) == timedelta(hours=1)
        assert cooldown_elapsed(last, self.NOW, self.COOLDOWN) is False

    def test_exactly_24_hours_after_is_allowed(self):
        last = self.NOW - timedelta(hours=24)
        assert cooldown_remaining(last, self.NOW, self.COOLDOWN) == ZERO
        assert cooldown_elapsed(last, self.NOW, self.COOLDOWN) is True

    def test_never_negative(self):
        last = self.NOW - timedelta(days=10)
        assert cooldown_remaining(last, self.NOW, self.COOLDOWN) == ZERO

    def test_next_allowed_at(self):
        last = self.NOW - timedelta(hours=20)
        assert next_allowed_at(last, self.NOW, self.COOLDOWN) == self.NOW + timedelta(hours=4)
        assert next_allowed_at(None, self.NOW, self.COOLDOWN) == self.NOW

    def test_naive_last_event_rejected(self):
        with pytest.raises(ValidationError, match="last_event_at"):
            cooldown_remaining(datetime(2026, 3, 10), self.NOW, self.COOLDOWN)


def test_ensure_aware_converts_to_utc():
    value = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=5)))
    assert ensure_aware(value) == datetime(2026, 1, 1, 7, 0, tzinfo=UTC)
    assert ensure_aware(value).tzinfo == UTC


def test_within_window_is_closed_interval():
    start = datetime(2026, 1, 1, tzinfo=UTC)
    window = timedelta(days=7)
    assert within_window(start, start, window)
    assert within_window(start, start + window, window)
    assert not within_window(start, start + window + timedelta(seconds=1), window)
    assert not within_window(start, start - timedelta(seconds=1), window)
