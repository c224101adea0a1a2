# chuk_context_budget/base_models.py
"""Base model for result objects handed to tool-dispatch callers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class DictCompatModel(BaseModel):
    """Result model that also reads like a plain dict.

    Dispatch layers frequently forward results as JSON-ish dicts; this
    allows ``result["success"]`` and ``"warnings" in result`` without a
    ``model_dump()`` round trip, and compares equal to its dumped form.
    """

    def __getitem__(self, key: str) -> Any:
        if key not in type(self).model_fields:
            raise KeyError(key)
        return getattr(self, key)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in type(self).model_fields
        return False

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, default) if key in type(self).model_fields else default

    def __eq__(self, other: object) -> bool:
        if isinstance(other, dict):
            return self.model_dump() == other
        return super().__eq__(other)
