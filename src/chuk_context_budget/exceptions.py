# chuk_context_budget/exceptions.py
"""
Exceptions for the context budget scheduler.

Only programmer errors are raised. Planner-level failures of activation
requests (missing dependencies, cycles, exclusivity conflicts, budget
overruns) are reported on the result objects so callers can narrow a
request without special exception handling. Redefining an active layer
into a shape the active set cannot hold raises LayerRedefinitionError,
which carries the same structured result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import LayerActivationResult


class ContextBudgetError(Exception):
    """Base exception for all context budget errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidInputError(ContextBudgetError, ValueError):
    """Raised for malformed ids, negative weights and empty requests."""


class UnknownLayerError(ContextBudgetError, KeyError):
    """Raised when an operation names a layer that was never defined."""

    def __init__(self, layer_id: str) -> None:
        super().__init__(f"Layer '{layer_id}' is not defined", {"layer_id": layer_id})
        self.layer_id = layer_id

    # KeyError.__str__ would quote the message
    __str__ = ContextBudgetError.__str__


class ItemNotFoundError(ContextBudgetError, KeyError):
    """Raised when an operation requires a tracked item that does not exist."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Item '{item_id}' is not tracked", {"item_id": item_id})
        self.item_id = item_id

    __str__ = ContextBudgetError.__str__


class LayerRedefinitionError(ContextBudgetError):
    """Raised when a new definition of an active layer would break the active set."""

    def __init__(self, layer_id: str, result: LayerActivationResult) -> None:
        super().__init__(
            f"Cannot redefine active layer '{layer_id}': {'; '.join(result.errors)}",
            {"layer_id": layer_id, "reason": result.error.value if result.error else None},
        )
        self.layer_id = layer_id
        self.result = result
