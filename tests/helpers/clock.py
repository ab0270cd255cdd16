"""Controllable clock for deterministic time-dependent tests."""

from datetime import datetime, timedelta


class FixedClock:
    """Callable returning a settable instant.

    Services accept any zero-argument callable as their clock, so tests
    pass an instance and move time with advance().
    """

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now
