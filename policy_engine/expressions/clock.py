"""Clocks for time-dependent operations.

The evaluator holds one clock and hands it to every operation that needs the
current time. Nothing in the engine calls ``datetime.now`` directly.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Wall-clock time in UTC."""
    return datetime.now(UTC)


class FixedClock:
    """A clock frozen at a given instant, for tests and replays."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant

    def __call__(self) -> datetime:
        return self._instant

    def advanced(self, delta: timedelta) -> "FixedClock":
        """Return a new clock moved forward by ``delta``."""
        return FixedClock(self._instant + delta)

    def __repr__(self) -> str:
        return f"FixedClock({self._instant.isoformat()})"
