from datetime import datetime, UTC
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time in UTC, naive, matching how datetimes are stored."""
    return datetime.now(UTC).replace(tzinfo=None)


def get_clock() -> Clock:
    """Dependency for the time source. Tests override it with a fixed clock."""
    return utc_now
