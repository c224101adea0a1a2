# tests/test_base_models.py
"""Dict-style access on the result models handed to dispatch layers."""

import pytest

from chuk_context_budget.models import (
    EvictionStrategy,
    ExclusivityConflict,
    LayerActivationResult,
    OptimizationResult,
    RejectionReason,
)


class TestActivationResultAccess:
    """LayerActivationResult reads like the dict it dumps to."""

    def test_rejection_fields_by_key(self):
        result = LayerActivationResult(
            success=False,
            error=RejectionReason.EXCLUSIVITY_CONFLICT,
            errors=["Conflicting layers are active: q x p"],
            conflicts=[ExclusivityConflict(requested="q", active="p")],
        )
        assert result["success"] is False
        assert result["error"] == RejectionReason.EXCLUSIVITY_CONFLICT
        assert result["conflicts"][0].active == "p"

    def test_unknown_key_raises(self):
        with pytest.raises(KeyError):
            LayerActivationResult(success=True)["skipped_ids"]

    def test_get_with_default(self):
        result = LayerActivationResult(success=True, activated=["base", "app"])
        assert result.get("activated") == ["base", "app"]
        assert result.get("tools_loaded", []) == []

    def test_contains_only_fields(self):
        result = LayerActivationResult(success=True)
        assert "required_reduction" in result
        assert "skipped_ids" not in result
        assert 0 not in result

    def test_equals_its_dump(self):
        result = LayerActivationResult(success=True, activated=["a"], new_weight=12.5)
        dumped = result.model_dump()
        assert result == dumped
        assert result != {**dumped, "new_weight": 0.0}


class TestOptimizationResultAccess:
    """OptimizationResult compares against dicts and other results."""

    def test_fields_by_key(self):
        result = OptimizationResult(removed=["x", "y"], weight_freed=30, new_weight=70, strategy="lfu")
        assert result["strategy"] == EvictionStrategy.LFU
        assert result["weight_freed"] == pytest.approx(30)
        assert "warnings" in result

    def test_model_equality(self):
        first = OptimizationResult(removed=["x"], weight_freed=3.0, new_weight=7.0)
        assert first == OptimizationResult(removed=["x"], weight_freed=3.0, new_weight=7.0)
        assert first != OptimizationResult(removed=["y"], weight_freed=3.0, new_weight=7.0)
