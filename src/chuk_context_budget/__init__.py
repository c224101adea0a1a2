# chuk_context_budget/__init__.py
"""
Context budget scheduler.

Governs which capability units (weighted tools and layers of tools) may
be active at once within a fixed context budget:
- Ledger: tracked units and running total weight
- Eviction: LRU, LFU, priority and smart ranking strategies
- Layers: dependency closures, exclusivity and activation planning
- Pressure: normal / warning / critical classification with transitions
- History and notifications for diagnostics and observers

Usage::

    from chuk_context_budget import ContextScheduler, Layer, SchedulerConfig

    scheduler = ContextScheduler(SchedulerConfig(max_weight=8000))
    await scheduler.define_layer(Layer(id="core", weight=1000, required=True))
    result = await scheduler.activate_layers(["core"])
"""

from .config import SchedulerConfig
from .exceptions import (
    ContextBudgetError,
    InvalidInputError,
    ItemNotFoundError,
    LayerRedefinitionError,
    UnknownLayerError,
)
from .models import (
    EvictionStrategy,
    HistoryAction,
    HistoryEntry,
    HistorySummary,
    Layer,
    LayerActivationRequest,
    LayerActivationResult,
    LayerRecommendation,
    LayerStatistics,
    LedgerStatistics,
    Notification,
    NotificationKind,
    OptimizationResult,
    PressureLevel,
    RejectionReason,
    SkipReason,
    Unit,
    UnitKind,
)
from .scheduler import ContextScheduler

__version__ = "0.1.0"

__all__ = [
    # Facade
    "ContextScheduler",
    "SchedulerConfig",
    # Enums
    "EvictionStrategy",
    "HistoryAction",
    "NotificationKind",
    "PressureLevel",
    "RejectionReason",
    "SkipReason",
    "UnitKind",
    # Models
    "HistoryEntry",
    "HistorySummary",
    "Layer",
    "LayerActivationRequest",
    "LayerActivationResult",
    "LayerRecommendation",
    "LayerStatistics",
    "LedgerStatistics",
    "Notification",
    "OptimizationResult",
    "Unit",
    # Errors
    "ContextBudgetError",
    "InvalidInputError",
    "ItemNotFoundError",
    "LayerRedefinitionError",
    "UnknownLayerError",
]
