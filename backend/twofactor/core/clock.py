from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...


class SystemClock:
    """Wall clock, seconds since the Unix epoch."""

    def now(self) -> float:
        return time.time()


class FixedClock:
    """Manually driven clock for deterministic tests."""

    def __init__(self, t: float):
        self._t = float(t)

    def now(self) -> float:
        return self._t

    def set(self, t: float) -> None:
        self._t = float(t)

    def advance(self, seconds: float) -> None:
        self._t += seconds
