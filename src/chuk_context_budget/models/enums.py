# chuk_context_budget/models/enums.py
"""Enums and constants for the context budget scheduler."""

from enum import Enum, IntEnum

# =============================================================================
# Enums
# =============================================================================


class UnitKind(str, Enum):
    """What a tracked unit represents."""

    TOOL = "tool"
    LAYER = "layer"


class EvictionStrategy(str, Enum):
    """Ranking strategies for eviction candidates."""

    LRU = "lru"  # Least recently used first
    LFU = "lfu"  # Least frequently used first
    PRIORITY = "priority"  # Lowest priority first
    SMART = "smart"  # Weighted recency + frequency + priority


class PressureLevel(IntEnum):
    """
    Ordinal classification of budget consumption.

    Ordered so that comparisons work: ``level >= PressureLevel.WARNING``.
    """

    NORMAL = 0
    WARNING = 1
    CRITICAL = 2

    @property
    def label(self) -> str:
        return self.name.lower()


class RejectionReason(str, Enum):
    """Why the planner rejected a request. Reported, never raised."""

    DEPENDENCY_UNRESOLVED = "dependency_unresolved"
    CYCLIC_DEPENDENCY = "cyclic_dependency"
    EXCLUSIVITY_CONFLICT = "exclusivity_conflict"
    BUDGET_EXCEEDED = "budget_exceeded"
    DEPENDENT_ACTIVE = "dependent_active"
    REQUIRED_LAYER = "required_layer"


class SkipReason(str, Enum):
    """Why a requested layer was left untouched by a successful request."""

    ALREADY_ACTIVE = "already_active"
    NOT_ACTIVE = "not_active"


class HistoryAction(str, Enum):
    """Kinds of committed operations kept in history."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    OPTIMIZE = "optimize"


class NotificationKind(str, Enum):
    """Events emitted to registered sinks after a commit."""

    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"
    PRESSURE_CHANGED = "pressure_changed"
    LAYER_ACTIVATED = "layer_activated"
    LAYER_DEACTIVATED = "layer_deactivated"
    OPTIMIZATION_PERFORMED = "optimization_performed"


# =============================================================================
# Constants
# =============================================================================

DEFAULT_PRIORITY: float = 5.0
DEFAULT_TOP_N_HEAVIEST: int = 5
DEFAULT_RECOMMENDATION_LIMIT: int = 3
