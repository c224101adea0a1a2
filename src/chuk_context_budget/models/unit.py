# chuk_context_budget/models/unit.py
"""Core unit models: Unit and Layer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from chuk_context_budget.models.enums import DEFAULT_PRIORITY, UnitKind

# =============================================================================
# Core Unit Models
# =============================================================================


class Unit(BaseModel):
    """
    A trackable thing consuming budget: a tool or an active layer.

    Timestamps are monotonic clock readings (seconds), never calendar time,
    so eviction ordering is immune to wall-clock adjustment.

    ``metadata`` is an opaque key-value map. The scheduler stores and
    returns it but never branches on its contents.
    """

    # Identity
    id: str = Field(..., min_length=1, description="Unique identifier")
    kind: UnitKind = Field(default=UnitKind.TOOL, description="Tool or layer")

    # Cost and importance
    weight: float = Field(..., ge=0, description="Consumption cost charged against the budget")
    priority: float = Field(default=DEFAULT_PRIORITY, description="Higher = more important")
    required: bool = Field(default=False, description="Required units are never evicted")

    # Usage tracking (monotonic)
    added_at: float = Field(default=0.0, description="Monotonic time of insertion")
    last_used_at: float = Field(default=0.0, description="Monotonic time of last use")
    usage_count: int = Field(default=1, ge=0, description="Number of uses, never decreases")

    metadata: dict[str, Any] = Field(default_factory=dict)

    def mark_used(self, now: float) -> None:
        """Bump usage; both counters only move forward."""
        self.usage_count += 1
        self.last_used_at = max(self.last_used_at, now)

    def idle_seconds(self, now: float) -> float:
        """Seconds since last use (never negative)."""
        return max(0.0, now - self.last_used_at)


class Layer(BaseModel):
    """
    A named bundle of tools with orchestration semantics.

    Definitions are immutable values; redefining a layer replaces the
    value in the graph. ``dependencies`` must be active whenever this layer
    is active. ``exclusive_with`` may not be active at the same time;
    exclusivity holds if either side declares it.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")

    weight: float = Field(default=0.0, ge=0, description="Context weight when active")
    priority: float = Field(default=DEFAULT_PRIORITY)
    required: bool = Field(default=False, description="Never evicted or deactivated once active")

    dependencies: frozenset[str] = Field(default_factory=frozenset)
    exclusive_with: frozenset[str] = Field(default_factory=frozenset)

    tools: frozenset[str] = Field(default_factory=frozenset, description="Member tool names")
    keywords: frozenset[str] = Field(default_factory=frozenset, description="Recommendation hints")
    load_by_default: bool = Field(default=False)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def declares_exclusive(self, other_id: str) -> bool:
        return other_id in self.exclusive_with

    def to_unit(self, now: float) -> Unit:
        """Build the ledger unit tracked while this layer is active."""
        return Unit(
            id=self.id,
            kind=UnitKind.LAYER,
            weight=self.weight,
            priority=self.priority,
            required=self.required,
            added_at=now,
            last_used_at=now,
            metadata=dict(self.metadata),
        )
