# chuk_context_budget/budget/eviction_policy.py
"""
Eviction policy protocol and implementations for the context budget.

Provides swappable ranking strategies plus the engine that walks a
ranking to free a target amount of weight. The engine is pure: it
selects, the caller removes.

Usage::

    from chuk_context_budget.budget.eviction_policy import EvictionEngine
    from chuk_context_budget.models import EvictionStrategy

    engine = EvictionEngine(default_strategy=EvictionStrategy.LRU)
    selection = engine.select(ledger.removable(), target_free=500, now=clock.now())
    for unit_id in selection.removed:
        ledger.remove(unit_id)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from ..models import EvictionCandidate, EvictionResult, EvictionStrategy, Unit

logger = logging.getLogger(__name__)

# =============================================================================
# Models
# =============================================================================


class EvictionContext(BaseModel):
    """
    Everything a policy needs to rank candidates.

    Required and protected units MUST be excluded by every policy.
    """

    now: float = 0.0
    candidates: list[Unit] = Field(default_factory=list)
    protected_ids: set[str] = Field(default_factory=set)

    def eligible(self) -> list[Unit]:
        return [u for u in self.candidates if not u.required and u.id not in self.protected_ids]


# =============================================================================
# Protocol
# =============================================================================


@runtime_checkable
class EvictionPolicy(Protocol):
    """
    Protocol for swappable ranking strategies.

    Implementations return candidates ordered for removal: index 0 goes
    first. Scores are policy-specific; lower = evict first.
    """

    strategy: EvictionStrategy

    def rank(self, context: EvictionContext) -> list[EvictionCandidate]: ...


# =============================================================================
# Implementations
# =============================================================================


class LRUEvictionPolicy:
    """Oldest ``last_used_at`` first; ties by usage count, then id."""

    strategy = EvictionStrategy.LRU

    def rank(self, context: EvictionContext) -> list[EvictionCandidate]:
        ordered = sorted(context.eligible(), key=lambda u: (u.last_used_at, u.usage_count, u.id))
        return [EvictionCandidate(unit_id=u.id, weight=u.weight, score=u.last_used_at) for u in ordered]


class LFUEvictionPolicy:
    """Lowest ``usage_count`` first; ties by recency, then id."""

    strategy = EvictionStrategy.LFU

    def rank(self, context: EvictionContext) -> list[EvictionCandidate]:
        ordered = sorted(context.eligible(), key=lambda u: (u.usage_count, u.last_used_at, u.id))
        return [EvictionCandidate(unit_id=u.id, weight=u.weight, score=float(u.usage_count)) for u in ordered]


class PriorityEvictionPolicy:
    """Lowest priority first; ties by recency, then id."""

    strategy = EvictionStrategy.PRIORITY

    def rank(self, context: EvictionContext) -> list[EvictionCandidate]:
        ordered = sorted(context.eligible(), key=lambda u: (u.priority, u.last_used_at, u.id))
        return [EvictionCandidate(unit_id=u.id, weight=u.weight, score=u.priority) for u in ordered]


class SmartPolicyConfig(BaseModel):
    """Coefficients for the hybrid policy (tunable, not a contract)."""

    recency_weight: float = Field(default=0.4, ge=0.0)
    frequency_weight: float = Field(default=0.3, ge=0.0)
    priority_weight: float = Field(default=0.3, ge=0.0)


def _normalizer(values: list[float]):
    """Min-max scale into [0, 1]; a flat range maps everything to 1.0."""
    low = min(values)
    span = max(values) - low

    def scale(value: float) -> float:
        return (value - low) / span if span > 0 else 1.0

    return scale


class SmartEvictionPolicy:
    """
    Hybrid policy.

    Retention score = recency * w1 + frequency * w2 + priority * w3, each
    term min-max normalized across the candidate set (recent, frequent,
    important → 1.0). Lowest retention score is evicted first. For two
    candidates equal in everything but recency, the more recently used one
    always ranks later.
    """

    strategy = EvictionStrategy.SMART

    def __init__(self, config: SmartPolicyConfig | None = None) -> None:
        self.config = config or SmartPolicyConfig()

    def rank(self, context: EvictionContext) -> list[EvictionCandidate]:
        units = context.eligible()
        if not units:
            return []

        cfg = self.config
        recency = _normalizer([u.last_used_at for u in units])
        frequency = _normalizer([float(u.usage_count) for u in units])
        importance = _normalizer([u.priority for u in units])

        scored: list[tuple[float, Unit]] = []
        for u in units:
            score = (
                recency(u.last_used_at) * cfg.recency_weight
                + frequency(float(u.usage_count)) * cfg.frequency_weight
                + importance(u.priority) * cfg.priority_weight
            )
            scored.append((score, u))

        scored.sort(key=lambda pair: (pair[0], pair[1].last_used_at, pair[1].id))
        return [EvictionCandidate(unit_id=u.id, weight=u.weight, score=score) for score, u in scored]


def build_policy(strategy: EvictionStrategy) -> EvictionPolicy:
    """Default policy instance for a strategy."""
    policies: dict[EvictionStrategy, type] = {
        EvictionStrategy.LRU: LRUEvictionPolicy,
        EvictionStrategy.LFU: LFUEvictionPolicy,
        EvictionStrategy.PRIORITY: PriorityEvictionPolicy,
        EvictionStrategy.SMART: SmartEvictionPolicy,
    }
    return policies[EvictionStrategy(strategy)]()


# =============================================================================
# Engine
# =============================================================================


class EvictionEngine:
    """
    Picks units to free ``target_free`` weight under a ranking strategy.

    Walks the ranking front to back and stops as soon as the target is
    met, so it never takes more whole units than ranked greedy removal
    needs. Running out of candidates is reported as a warning.
    """

    def __init__(
        self,
        default_strategy: EvictionStrategy = EvictionStrategy.SMART,
        policies: dict[EvictionStrategy, EvictionPolicy] | None = None,
    ) -> None:
        self.default_strategy = EvictionStrategy(default_strategy)
        self._policies: dict[EvictionStrategy, EvictionPolicy] = {s: build_policy(s) for s in EvictionStrategy}
        if policies:
            self._policies.update(policies)

    def set_policy(self, policy: EvictionPolicy) -> None:
        """Replace the policy used for ``policy.strategy``."""
        self._policies[policy.strategy] = policy

    def get_policy(self, strategy: EvictionStrategy | None = None) -> EvictionPolicy:
        return self._policies[EvictionStrategy(strategy or self.default_strategy)]

    def rank(
        self,
        candidates: Iterable[Unit],
        now: float,
        strategy: EvictionStrategy | None = None,
        protected: Iterable[str] = (),
    ) -> list[EvictionCandidate]:
        context = EvictionContext(now=now, candidates=list(candidates), protected_ids=set(protected))
        return self.get_policy(strategy).rank(context)

    def select(
        self,
        candidates: Iterable[Unit],
        target_free: float,
        now: float,
        strategy: EvictionStrategy | None = None,
        protected: Iterable[str] = (),
    ) -> EvictionResult:
        chosen = EvictionStrategy(strategy or self.default_strategy)
        result = EvictionResult(target_free=max(0.0, target_free), strategy=chosen)
        if result.target_free <= 0:
            return result

        ranked = self.rank(candidates, now, chosen, protected)
        if not ranked:
            result.warnings.append("No items available for removal")
            return result

        for candidate in ranked:
            if result.weight_freed >= result.target_free:
                break
            result.removed.append(candidate.unit_id)
            result.weight_freed += candidate.weight

        if not result.satisfied:
            result.warnings.append(
                f"Removable units exhausted: freed {result.weight_freed:g} of {result.target_free:g} requested"
            )
            logger.debug("Eviction target not met under %s: %s", chosen.value, result.warnings[-1])

        return result
