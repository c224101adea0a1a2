# chuk_context_budget/models/stats.py
"""Statistics snapshots."""

from datetime import datetime

from pydantic import BaseModel, Field

from chuk_context_budget.models.enums import PressureLevel, UnitKind

# =============================================================================
# Stats Models
# =============================================================================


class HeavyItem(BaseModel):
    """One of the heaviest tracked units."""

    id: str
    weight: float
    kind: UnitKind = UnitKind.TOOL


class LedgerStatistics(BaseModel):
    """Read-only snapshot of ledger state."""

    total_weight: float = Field(default=0.0, description="Current total weight")
    max_weight: float = Field(default=0.0, description="Budget ceiling")
    utilization: float = Field(default=0.0, description="total_weight / max_weight")
    pressure: PressureLevel = Field(default=PressureLevel.NORMAL)
    active_items: int = Field(default=0, description="Number of tracked units")
    average_weight: float = Field(default=0.0)
    largest_items: list[HeavyItem] = Field(default_factory=list)
    optimization_potential: float = Field(
        default=0.0,
        description="Weight of all currently removable (non-required, retention-eligible) units",
    )
    weight_by_kind: dict[UnitKind, float] = Field(default_factory=dict)
    active_layers: list[str] = Field(default_factory=list)


class LayerStatistics(BaseModel):
    """Per-layer usage counters, kept across activations."""

    layer_id: str
    activation_count: int = 0
    deactivation_count: int = 0
    last_activated: datetime | None = None
    total_active_seconds: float = 0.0
    active_since: float | None = Field(default=None, description="Monotonic time of current activation")

    @property
    def average_active_seconds(self) -> float:
        if self.deactivation_count == 0:
            return 0.0
        return self.total_active_seconds / self.deactivation_count


class PressureTransition(BaseModel):
    """A change in pressure level observed after a commit."""

    previous: PressureLevel
    current: PressureLevel
    weight: float
    max_weight: float

    @property
    def escalated(self) -> bool:
        return self.current > self.previous
