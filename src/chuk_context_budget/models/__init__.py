# chuk_context_budget/models/__init__.py
"""
Core models for the context budget scheduler.

All public names are re-exported here so callers can use
``from chuk_context_budget.models import Layer``.
"""

# --- enums & constants -------------------------------------------------------
from chuk_context_budget.models.enums import (  # noqa: F401
    DEFAULT_PRIORITY,
    DEFAULT_RECOMMENDATION_LIMIT,
    DEFAULT_TOP_N_HEAVIEST,
    EvictionStrategy,
    HistoryAction,
    NotificationKind,
    PressureLevel,
    RejectionReason,
    SkipReason,
    UnitKind,
)

# --- results, history, notifications ----------------------------------------
from chuk_context_budget.models.results import (  # noqa: F401
    EvictionCandidate,
    EvictionResult,
    ExclusivityConflict,
    HistoryEntry,
    HistorySummary,
    LayerActivationRequest,
    LayerActivationResult,
    LayerRecommendation,
    Notification,
    OptimizationResult,
    SkippedLayer,
)

# --- stats -------------------------------------------------------------------
from chuk_context_budget.models.stats import (  # noqa: F401
    HeavyItem,
    LayerStatistics,
    LedgerStatistics,
    PressureTransition,
)

# --- units -------------------------------------------------------------------
from chuk_context_budget.models.unit import Layer, Unit  # noqa: F401
