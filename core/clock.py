# core/clock.py
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Aware UTC timestamp; every instant in the database is stored this way."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    # Naive input is taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    """Convert Stripe epoch seconds to aware UTC (None stays None)."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


class Clock:
    """Source of "now" for timestamps. Never used to derive period keys."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock(Clock):
    def __init__(self, instant: datetime):
        self.instant = to_utc(instant)

    def now(self) -> datetime:
        return self.instant


system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency (overridden in tests)."""
    return system_clock
