# chuk_context_budget/budget/ledger.py
"""
Resource Ledger for the context budget scheduler.

The ledger is the source of truth for every tracked unit's weight and
usage metadata, and for the running total weight charged against the
budget. It knows nothing about layers, dependencies or strategies.

Design principles:
- Pydantic-native: BaseModel subclass with proper validation
- Weight-aware: total is recomputed from tracked units on every mutation
- Required units are never removed (callers must clear the flag first)
- Retention: eligibility is measured on the monotonic clock
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from ..exceptions import ItemNotFoundError
from ..models import (
    DEFAULT_TOP_N_HEAVIEST,
    HeavyItem,
    LedgerStatistics,
    PressureLevel,
    Unit,
    UnitKind,
)
from .clock import MonotonicClock

logger = logging.getLogger(__name__)


class ResourceLedger(BaseModel):
    """
    Tracks units and the total weight they consume.

    ``current_weight`` always equals the sum of tracked unit weights.
    """

    max_weight: float = Field(..., gt=0, description="Budget ceiling")
    min_retention_seconds: float = Field(default=0.0, ge=0)

    clock: Any = Field(default_factory=MonotonicClock, exclude=True)

    model_config = {"arbitrary_types_allowed": True}

    _units: dict[str, Unit] = PrivateAttr(default_factory=dict)
    _total: float = PrivateAttr(default=0.0)

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._units

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def current_weight(self) -> float:
        return self._total

    @property
    def utilization(self) -> float:
        return self._total / self.max_weight

    def get(self, unit_id: str) -> Unit | None:
        return self._units.get(unit_id)

    def items(self) -> list[Unit]:
        """All tracked units in insertion order."""
        return list(self._units.values())

    def ids(self) -> list[str]:
        return list(self._units)

    def weight_of(self, unit_ids: Iterable[str]) -> float:
        """Sum of weights for the tracked ids among ``unit_ids``."""
        return sum(self._units[uid].weight for uid in set(unit_ids) if uid in self._units)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_or_update(self, unit: Unit) -> Unit:
        """
        Insert a unit or replace the tracked state of an existing one.

        Re-adding an id counts as a use: usage counters are carried
        forward and bumped, never reset. A removed id re-added later
        starts fresh.
        """
        now = self.clock.now()
        existing = self._units.get(unit.id)

        if existing is not None:
            stored = unit.model_copy(
                update={
                    "added_at": existing.added_at,
                    "last_used_at": existing.last_used_at,
                    "usage_count": existing.usage_count,
                }
            )
            stored.mark_used(now)
        else:
            stored = unit.model_copy(update={"added_at": now, "last_used_at": now, "usage_count": 1})

        self._units[unit.id] = stored
        self._recompute()

        logger.debug(
            "Ledger %s %s (weight=%s, total=%s)",
            "updated" if existing else "added",
            unit.id,
            unit.weight,
            self._total,
        )
        return stored

    def remove(self, unit_id: str) -> bool:
        """
        Remove a unit. Returns False if absent or required.

        The ledger has no override for required units; callers must
        clear the flag with ``update()`` first.
        """
        unit = self._units.get(unit_id)
        if unit is None:
            return False
        if unit.required:
            logger.warning("Refusing to remove required unit %s", unit_id)
            return False

        del self._units[unit_id]
        self._recompute()
        logger.debug("Ledger removed %s (weight=%s, total=%s)", unit_id, unit.weight, self._total)
        return True

    def mark_used(self, unit_id: str) -> bool:
        """Bump usage count and recency. No-op (False) if absent."""
        unit = self._units.get(unit_id)
        if unit is None:
            return False
        unit.mark_used(self.clock.now())
        return True

    def update(
        self,
        unit_id: str,
        weight: float | None = None,
        priority: float | None = None,
        required: bool | None = None,
    ) -> Unit:
        """Change weight, priority or required flag of a tracked unit."""
        unit = self._units.get(unit_id)
        if unit is None:
            raise ItemNotFoundError(unit_id)

        changes: dict[str, Any] = {}
        if weight is not None:
            changes["weight"] = weight
        if priority is not None:
            changes["priority"] = priority
        if required is not None:
            changes["required"] = required

        updated = Unit.model_validate({**unit.model_dump(), **changes})
        self._units[unit_id] = updated
        self._recompute()
        return updated

    def clear(self, keep_required: bool = True) -> list[str]:
        """Drop every unit (or every non-required unit). Returns removed ids."""
        removed = [uid for uid, u in self._units.items() if not (keep_required and u.required)]
        for uid in removed:
            del self._units[uid]
        self._recompute()
        return removed

    def _recompute(self) -> None:
        self._total = sum(u.weight for u in self._units.values())

    # ------------------------------------------------------------------
    # Budget queries
    # ------------------------------------------------------------------

    def can_add(self, weight: float) -> bool:
        """True iff ``weight`` more fits under max_weight."""
        return self._total + weight <= self.max_weight

    def required_reduction(self, weight: float) -> float:
        """How much must be freed before ``weight`` more fits."""
        return max(0.0, self._total + weight - self.max_weight)

    def is_removable(self, unit: Unit, now: float | None = None) -> bool:
        """Non-required and unused for at least the retention window."""
        if unit.required:
            return False
        current = self.clock.now() if now is None else now
        return unit.idle_seconds(current) >= self.min_retention_seconds

    def removable(self, exclude: Iterable[str] = ()) -> list[Unit]:
        """Eviction-eligible units, evaluated against the clock right now."""
        now = self.clock.now()
        skip = set(exclude)
        return [u for u in self._units.values() if u.id not in skip and self.is_removable(u, now)]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def statistics(
        self,
        pressure: PressureLevel = PressureLevel.NORMAL,
        top_n: int = DEFAULT_TOP_N_HEAVIEST,
        active_layers: Iterable[str] = (),
    ) -> LedgerStatistics:
        units = list(self._units.values())
        heaviest = sorted(units, key=lambda u: (-u.weight, u.id))[:top_n]

        by_kind: dict[UnitKind, float] = dict.fromkeys(UnitKind, 0.0)
        for u in units:
            by_kind[u.kind] += u.weight

        return LedgerStatistics(
            total_weight=self._total,
            max_weight=self.max_weight,
            utilization=self.utilization,
            pressure=pressure,
            active_items=len(units),
            average_weight=self._total / len(units) if units else 0.0,
            largest_items=[HeavyItem(id=u.id, weight=u.weight, kind=u.kind) for u in heaviest],
            optimization_potential=sum(u.weight for u in self.removable()),
            weight_by_kind=by_kind,
            active_layers=list(active_layers),
        )
