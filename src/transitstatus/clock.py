"""Venue-local clock."""

import time
from datetime import datetime
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Taipei"


class Clock:
    """Supplies the current time in the venue's local civil time."""

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        """Current aware datetime in the venue timezone."""
        return datetime.now(self.tz)

    def timestamp(self) -> float:
        """Current Unix timestamp, used for cache ages."""
        return time.time()
