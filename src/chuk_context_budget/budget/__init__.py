# chuk_context_budget/budget/__init__.py
"""
Budget subsystem.

Leaf components of the scheduler:
- Ledger: tracked units and the running total weight
- Eviction: ranking strategies and the selection engine
- Pressure: threshold classification and transitions
- History: bounded log of committed operations
- Notifications: per-event sinks
"""

from .clock import Clock, MonotonicClock
from .eviction_policy import (
    EvictionContext,
    EvictionEngine,
    EvictionPolicy,
    LFUEvictionPolicy,
    LRUEvictionPolicy,
    PriorityEvictionPolicy,
    SmartEvictionPolicy,
    SmartPolicyConfig,
    build_policy,
)
from .history import HistoryRecorder
from .ledger import ResourceLedger
from .notifications import NotificationHub, NotificationSink
from .pressure import PressureMonitor, classify_pressure

__all__ = [
    # Clock
    "Clock",
    "MonotonicClock",
    # Ledger
    "ResourceLedger",
    # Eviction
    "EvictionContext",
    "EvictionEngine",
    "EvictionPolicy",
    "LFUEvictionPolicy",
    "LRUEvictionPolicy",
    "PriorityEvictionPolicy",
    "SmartEvictionPolicy",
    "SmartPolicyConfig",
    "build_policy",
    # Pressure
    "PressureMonitor",
    "classify_pressure",
    # History
    "HistoryRecorder",
    # Notifications
    "NotificationHub",
    "NotificationSink",
]
