# chuk_context_budget/budget/history.py
"""
History Recorder for the context budget scheduler.

Bounded append-only log of committed activation, deactivation and
optimization outcomes, for diagnostics.
Oldest entries fall off first once capacity is reached.
"""

from __future__ import annotations

from collections import deque

from ..models import (
    HistoryAction,
    HistoryEntry,
    HistorySummary,
    LayerActivationResult,
    OptimizationResult,
)


class HistoryRecorder:
    """Capacity-bounded ring buffer of HistoryEntry records."""

    def __init__(self, capacity: int = 500) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)
        self._sequence = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def record(self, action: HistoryAction, requested: list[str] | tuple[str, ...] = (), **fields) -> HistoryEntry:
        """Create and append an entry with the next sequence number."""
        self._sequence += 1
        entry = HistoryEntry(sequence=self._sequence, action=action, requested=tuple(requested), **fields)
        self.append(entry)
        return entry

    def record_layer_result(
        self,
        result: LayerActivationResult,
        requested: list[str],
        reason: str = "",
        requested_by: str = "",
    ) -> HistoryEntry:
        return self.record(
            result.action,
            requested,
            success=result.success,
            activated=tuple(result.activated),
            deactivated=tuple(result.deactivated),
            removed=tuple(result.evicted),
            weight_freed=result.freed_weight,
            weight_after=result.new_weight,
            reason=reason,
            requested_by=requested_by,
            error=result.error,
        )

    def record_optimization(self, result: OptimizationResult, reason: str = "optimize") -> HistoryEntry:
        return self.record(
            HistoryAction.OPTIMIZE,
            success=True,
            removed=tuple(result.removed),
            weight_freed=result.weight_freed,
            weight_after=result.new_weight,
            reason=reason,
        )

    def recent(self, limit: int | None = None) -> list[HistoryEntry]:
        """Most recent ``limit`` entries, oldest first. All when limit is None."""
        entries = list(self._entries)
        if limit is None:
            return entries
        if limit <= 0:
            return []
        return entries[-limit:]

    def resize(self, capacity: int) -> None:
        """Change capacity, keeping the newest entries."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries = deque(self._entries, maxlen=capacity)

    def clear(self) -> None:
        self._entries.clear()

    def summary(self) -> HistorySummary:
        by_action = dict.fromkeys(HistoryAction, 0)
        for entry in self._entries:
            by_action[entry.action] += 1

        return HistorySummary(
            entries=len(self._entries),
            capacity=self.capacity,
            activations=by_action[HistoryAction.ACTIVATE],
            deactivations=by_action[HistoryAction.DEACTIVATE],
            optimizations=by_action[HistoryAction.OPTIMIZE],
            total_weight_freed=sum(e.weight_freed for e in self._entries),
        )
