"""Injectable time source.

Services never call ``datetime.now()`` directly; they receive a ``Clock`` so
that tests can pin transaction and closing timestamps. Times are naive local
datetimes, matching what the database stores.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock returning the local wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()


class DeterministicClock(Clock):
    """Test clock with controlled time.

    Each call to ``now()`` returns the current time and then moves it forward
    by ``step`` (zero by default), which keeps successive postings ordered.
    """

    def __init__(self, fixed_time: Optional[datetime] = None, step: timedelta = timedelta(0)):
        self._time = fixed_time or datetime(2024, 1, 1, 12, 0, 0)
        self._step = step

    def now(self) -> datetime:
        current = self._time
        self._time = self._time + self._step
        return current

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._time = time
