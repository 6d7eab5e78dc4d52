from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from icebath.core.config import settings


class Clock:
    """Source of "now" for every date-sensitive rule (expiry, today, week resets)."""

    def __init__(self, tz: Optional[str] = None):
        self.tz = ZoneInfo(tz or settings.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        # Session dates are studio-local calendar dates
        return self.now().astimezone(self.tz).date()


class FixedClock(Clock):
    """Clock pinned to a single instant. Used by tests and replay scripts."""

    def __init__(self, instant: datetime, tz: Optional[str] = None):
        super().__init__(tz)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


_clock = Clock()


def get_clock() -> Clock:
    return _clock


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Make a stored datetime comparable with Clock.now(); naive values are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
