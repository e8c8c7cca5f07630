# src/common/clock.py
"""Time and identity sources shared by every clinic-flow component."""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


class Clock:
    """Supplies the current time and fresh identifiers.

    All timestamps are timezone-aware UTC. ``today()`` answers which clinic
    day a timestamp belongs to, using the clinic's local timezone.
    """

    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.day_of(self.now())

    def day_of(self, moment: datetime) -> date:
        return moment.astimezone(self.tz).date()

    def new_id(self) -> uuid.UUID:
        return uuid.uuid4()


class ManualClock(Clock):
    """Clock that only moves when told to. Used by tests and demo scripts."""

    def __init__(self, start: Optional[datetime] = None, tz_name: str = "UTC"):
        super().__init__(tz_name)
        self._now = start or datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward, e.g. ``advance(minutes=6)``."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment
