"""Injected wall clock. Services never read the system time directly."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a fixed clock."""
    return utcnow


def fixed_clock(moment: datetime) -> Clock:
    """Clock that always returns `moment` (deterministic scenarios)."""

    def _now() -> datetime:
        return moment

    return _now
