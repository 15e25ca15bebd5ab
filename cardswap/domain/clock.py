"""Timestamp and identifier sources."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

_TICK = timedelta(microseconds=1)


class MonotonicClock:
    """UTC wall clock that never returns the same instant twice."""

    def __init__(self, source: Callable[[], datetime] | None = None) -> None:
        self._source = source or (lambda: datetime.now(timezone.utc))
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = self._source()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        if self._last is not None and current <= self._last:
            current = self._last + _TICK
        self._last = current
        return current


def new_id() -> str:
    return uuid.uuid4().hex
