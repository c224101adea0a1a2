# chuk_context_budget/budget/notifications.py
"""
Notification hub.

Sinks are plain callables registered per event kind (or for every kind).
Delivery is synchronous, after a commit, and fire-and-forget: a failing
sink is logged and the remaining sinks still run. Sinks receive frozen
Notification payloads and must not call back into the scheduler's
mutating API.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from ..models import Notification, NotificationKind

logger = logging.getLogger(__name__)

NotificationSink = Callable[[Notification], None]


class NotificationHub:
    """Registry of sinks keyed by NotificationKind."""

    def __init__(self) -> None:
        self._sinks: dict[NotificationKind | None, list[NotificationSink]] = defaultdict(list)

    def subscribe(self, kind: NotificationKind | None, sink: NotificationSink) -> None:
        """Register ``sink`` for ``kind``; ``None`` subscribes to everything."""
        self._sinks[kind].append(sink)

    def unsubscribe(self, kind: NotificationKind | None, sink: NotificationSink) -> bool:
        sinks = self._sinks.get(kind, [])
        if sink in sinks:
            sinks.remove(sink)
            return True
        return False

    def sink_count(self, kind: NotificationKind | None = None) -> int:
        return len(self._sinks.get(kind, []))

    def emit(self, kind: NotificationKind, /, **data: Any) -> Notification:
        """Deliver ``data`` to sinks; ``data`` may itself carry a ``kind`` key."""
        notification = Notification(kind=kind, data=data)
        for sink in [*self._sinks.get(kind, []), *self._sinks.get(None, [])]:
            try:
                sink(notification)
            except Exception:
                logger.warning("Notification sink failed for %s", kind.value, exc_info=True)
        return notification
