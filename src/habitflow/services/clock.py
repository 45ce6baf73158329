"""Injectable time source.

Services never call ``datetime.now`` directly; tests pass a ``FixedClock``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

from ..utils.time import as_utc


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime):
        self._instant = as_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = as_utc(instant)

    def advance(self, delta: timedelta = timedelta(0), **kwargs: float) -> datetime:
        self._instant = self._instant + delta + timedelta(**kwargs)
        return self._instant


__all__ = ["Clock", "FixedClock", "SystemClock"]
