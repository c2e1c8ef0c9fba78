from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock as naive UTC, the representation stored in the database."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)
