# chuk_context_budget/models/results.py
"""Result, history and notification models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from chuk_context_budget.base_models import DictCompatModel
from chuk_context_budget.models.enums import (
    EvictionStrategy,
    HistoryAction,
    NotificationKind,
    RejectionReason,
    SkipReason,
)

# =============================================================================
# Eviction
# =============================================================================


class EvictionCandidate(BaseModel):
    """A ranked eviction candidate. Lower score = evict first."""

    unit_id: str
    weight: float
    score: float


class EvictionResult(BaseModel):
    """Selection made by the eviction engine. Nothing is removed yet."""

    removed: list[str] = Field(default_factory=list, description="Ids in removal order")
    weight_freed: float = 0.0
    target_free: float = 0.0
    strategy: EvictionStrategy = EvictionStrategy.SMART
    warnings: list[str] = Field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        return self.weight_freed >= self.target_free


class OptimizationResult(DictCompatModel):
    """Outcome of an explicit or automatic optimize pass."""

    removed: list[str] = Field(default_factory=list)
    weight_freed: float = 0.0
    new_weight: float = 0.0
    strategy: EvictionStrategy = EvictionStrategy.SMART
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# Layer activation
# =============================================================================


class LayerActivationRequest(BaseModel):
    """A request to bring a set of layers (and their dependencies) online."""

    layer_ids: list[str] = Field(default_factory=list)
    allow_auto_deactivate: bool = Field(
        default=False,
        description="Deactivate active layers that conflict with the request",
    )
    allow_optimize: bool | None = Field(
        default=None,
        description="Override the configured auto_optimize for this request",
    )
    reason: str = Field(default="Manual activation")
    requested_by: str = Field(default="unknown")


class ExclusivityConflict(BaseModel):
    """A (requested-or-dependency, currently active) pair declared exclusive."""

    model_config = {"frozen": True}

    requested: str
    active: str


class SkippedLayer(BaseModel):
    layer_id: str
    reason: SkipReason


class LayerActivationResult(DictCompatModel):
    """
    Outcome of one activation or deactivation request.

    On rejection ``success`` is False, ``error`` names the reason and the
    diagnostic fields (``missing``, ``conflicts``, ``blocking``,
    ``required_reduction``) describe what blocked the request. No state
    changed in that case.
    """

    success: bool = False
    action: HistoryAction = HistoryAction.ACTIVATE

    activated: list[str] = Field(default_factory=list)
    deactivated: list[str] = Field(default_factory=list)
    evicted: list[str] = Field(default_factory=list, description="Units removed to make room")
    skipped: list[SkippedLayer] = Field(default_factory=list)

    activated_tools: list[str] = Field(default_factory=list)
    deactivated_tools: list[str] = Field(default_factory=list)

    freed_weight: float = 0.0
    new_weight: float = 0.0

    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    # Rejection diagnostics
    error: RejectionReason | None = None
    missing: list[str] = Field(default_factory=list)
    cyclic_ids: list[str] = Field(default_factory=list)
    conflicts: list[ExclusivityConflict] = Field(default_factory=list)
    blocking: list[str] = Field(default_factory=list)
    required_reduction: float = 0.0

    @property
    def skipped_ids(self) -> list[str]:
        return [s.layer_id for s in self.skipped]


class LayerRecommendation(BaseModel):
    """An inactive layer suggested for a free-text context."""

    layer_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    relevant_tools: list[str] = Field(default_factory=list)
    weight: float = 0.0
    fits_budget: bool = True


# =============================================================================
# History & notifications
# =============================================================================


class HistoryEntry(BaseModel):
    """Immutable record of one committed operation."""

    model_config = {"frozen": True}

    sequence: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: HistoryAction
    requested: tuple[str, ...] = ()
    success: bool = True
    activated: tuple[str, ...] = ()
    deactivated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    weight_freed: float = 0.0
    weight_after: float = 0.0
    reason: str = ""
    requested_by: str = ""
    error: RejectionReason | None = None


class HistorySummary(BaseModel):
    """Counts over the retained history window."""

    entries: int = 0
    capacity: int = 0
    activations: int = 0
    deactivations: int = 0
    optimizations: int = 0
    total_weight_freed: float = 0.0


class Notification(BaseModel):
    """Payload delivered to notification sinks."""

    model_config = {"frozen": True}

    kind: NotificationKind
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)
