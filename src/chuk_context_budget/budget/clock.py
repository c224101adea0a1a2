# chuk_context_budget/budget/clock.py
"""
Clock abstraction for the budget subsystem.

Recency and retention are measured on a monotonic clock so a caller (or
NTP) moving the wall clock cannot reorder eviction or make a unit
eligible early. Calendar time only appears at the reporting boundary
(history entries, statistics, notifications).
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of monotonic seconds."""

    def now(self) -> float: ...


class MonotonicClock:
    """Default clock backed by ``time.monotonic``."""

    def now(self) -> float:
        return time.monotonic()
