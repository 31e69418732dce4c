"""
Injectable time source for the warehouse kernel.

Services take a Clock instead of calling ``datetime.now()``: movement
``committed_at`` and batch ``received_at`` come from it, and both order the
oldest-first batch suggestions and the item stock history.  Tests pin those
orderings with DeterministicClock.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

_DEFAULT_START = datetime(2024, 1, 1, 8, 0, 0, tzinfo=UTC)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock pinned to a start instant.

    Time only moves through ``advance()``, so two receipts recorded in a
    row share a timestamp unless the test separates them.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or _DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1, *, days: int = 0) -> datetime:
        """Move forward and return the new instant."""
        self._current += timedelta(days=days, seconds=seconds)
        return self._current
