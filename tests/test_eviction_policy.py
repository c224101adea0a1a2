# tests/test_eviction_policy.py
"""
Tests for the eviction policy module.

Covers:
- EvictionCandidate model and ordering
- EvictionContext eligibility (required and protected units excluded)
- LRU, LFU, Priority orderings and their tie-breaks
- SmartEvictionPolicy monotonicity properties and custom coefficients
- EvictionEngine greedy selection, warnings and policy swapping
"""

import pytest

from chuk_context_budget.budget.eviction_policy import (
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
from chuk_context_budget.models import EvictionCandidate, EvictionStrategy, Unit


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _unit(
    unit_id: str,
    weight: float = 10,
    last_used_at: float = 0.0,
    usage_count: int = 1,
    priority: float = 5,
    required: bool = False,
) -> Unit:
    return Unit(
        id=unit_id,
        weight=weight,
        last_used_at=last_used_at,
        usage_count=usage_count,
        priority=priority,
        required=required,
    )


def _ids(candidates):
    return [c.unit_id for c in candidates]


ALL_POLICIES = [LRUEvictionPolicy, LFUEvictionPolicy, PriorityEvictionPolicy, SmartEvictionPolicy]


# =============================================================================
# TestEvictionCandidate
# =============================================================================


class TestEvictionCandidate:
    """Tests for the EvictionCandidate model."""

    def test_creation(self):
        c = EvictionCandidate(unit_id="u1", weight=12, score=0.42)
        assert c.unit_id == "u1"
        assert c.weight == 12
        assert c.score == pytest.approx(0.42)

    def test_score_ordering(self):
        """Candidates can be sorted by score; lower score = evict first."""
        candidates = [
            EvictionCandidate(unit_id="high", weight=1, score=0.9),
            EvictionCandidate(unit_id="low", weight=1, score=0.1),
            EvictionCandidate(unit_id="mid", weight=1, score=0.5),
        ]
        candidates.sort(key=lambda c: c.score)
        assert _ids(candidates) == ["low", "mid", "high"]


# =============================================================================
# TestEvictionContext
# =============================================================================


class TestEvictionContext:
    """Tests for the EvictionContext model."""

    def test_empty_context(self):
        ctx = EvictionContext()
        assert ctx.now == 0
        assert ctx.candidates == []
        assert ctx.eligible() == []

    def test_required_and_protected_excluded(self):
        ctx = EvictionContext(
            candidates=[_unit("a"), _unit("core", required=True), _unit("pinned")],
            protected_ids={"pinned"},
        )
        assert [u.id for u in ctx.eligible()] == ["a"]

    @pytest.mark.parametrize("policy_cls", ALL_POLICIES)
    def test_required_never_ranked(self, policy_cls):
        """No strategy ever ranks a required unit."""
        ctx = EvictionContext(
            now=100,
            candidates=[
                _unit("core", last_used_at=0, usage_count=1, priority=0, required=True),
                _unit("a", last_used_at=50, usage_count=9, priority=9),
            ],
        )
        assert _ids(policy_cls().rank(ctx)) == ["a"]

    @pytest.mark.parametrize("policy_cls", ALL_POLICIES)
    def test_policies_satisfy_protocol(self, policy_cls):
        assert isinstance(policy_cls(), EvictionPolicy)


# =============================================================================
# TestSimplePolicies
# =============================================================================


class TestLRUEvictionPolicy:
    """Oldest last_used_at first."""

    def test_oldest_first(self):
        ctx = EvictionContext(
            candidates=[_unit("new", last_used_at=30), _unit("old", last_used_at=10), _unit("mid", last_used_at=20)]
        )
        assert _ids(LRUEvictionPolicy().rank(ctx)) == ["old", "mid", "new"]

    def test_ties_are_deterministic(self):
        ctx = EvictionContext(candidates=[_unit("b"), _unit("a")])
        assert _ids(LRUEvictionPolicy().rank(ctx)) == ["a", "b"]


class TestLFUEvictionPolicy:
    """Least used first; ties by recency."""

    def test_least_used_first(self):
        ctx = EvictionContext(
            candidates=[_unit("busy", usage_count=10), _unit("idle", usage_count=1), _unit("some", usage_count=4)]
        )
        assert _ids(LFUEvictionPolicy().rank(ctx)) == ["idle", "some", "busy"]

    def test_tie_broken_by_recency(self):
        ctx = EvictionContext(
            candidates=[_unit("recent", usage_count=2, last_used_at=50), _unit("stale", usage_count=2, last_used_at=5)]
        )
        assert _ids(LFUEvictionPolicy().rank(ctx)) == ["stale", "recent"]


class TestPriorityEvictionPolicy:
    """Lowest priority first; ties by recency."""

    def test_lowest_priority_first(self):
        ctx = EvictionContext(candidates=[_unit("hi", priority=9), _unit("lo", priority=1), _unit("mid", priority=5)])
        assert _ids(PriorityEvictionPolicy().rank(ctx)) == ["lo", "mid", "hi"]

    def test_tie_broken_by_recency(self):
        ctx = EvictionContext(
            candidates=[_unit("recent", priority=3, last_used_at=50), _unit("stale", priority=3, last_used_at=5)]
        )
        assert _ids(PriorityEvictionPolicy().rank(ctx)) == ["stale", "recent"]


# =============================================================================
# TestSmartEvictionPolicy
# =============================================================================


class TestSmartEvictionPolicy:
    """Hybrid policy: verify monotonicity, not exact scores."""

    def test_default_config(self):
        cfg = SmartEvictionPolicy().config
        assert cfg.recency_weight == pytest.approx(0.4)
        assert cfg.frequency_weight == pytest.approx(0.3)
        assert cfg.priority_weight == pytest.approx(0.3)

    def test_more_recent_ranks_later(self):
        """Equal in all but recency: the more recently used unit goes later."""
        ctx = EvictionContext(
            candidates=[_unit("recent", last_used_at=90), _unit("stale", last_used_at=10), _unit("mid", last_used_at=50)]
        )
        assert _ids(SmartEvictionPolicy().rank(ctx)) == ["stale", "mid", "recent"]

    def test_more_frequent_ranks_later(self):
        ctx = EvictionContext(candidates=[_unit("busy", usage_count=20), _unit("idle", usage_count=1)])
        assert _ids(SmartEvictionPolicy().rank(ctx)) == ["idle", "busy"]

    def test_higher_priority_ranks_later(self):
        ctx = EvictionContext(candidates=[_unit("important", priority=9), _unit("minor", priority=1)])
        assert _ids(SmartEvictionPolicy().rank(ctx)) == ["minor", "important"]

    def test_scores_ascending(self):
        ctx = EvictionContext(
            candidates=[
                _unit("a", last_used_at=10, usage_count=3, priority=2),
                _unit("b", last_used_at=40, usage_count=1, priority=8),
                _unit("c", last_used_at=20, usage_count=7, priority=5),
            ]
        )
        scores = [c.score for c in SmartEvictionPolicy().rank(ctx)]
        assert scores == sorted(scores)

    def test_stable_under_equal_inputs(self):
        units = [_unit(f"u{i}") for i in range(5)]
        ctx = EvictionContext(candidates=list(reversed(units)))
        first = _ids(SmartEvictionPolicy().rank(ctx))
        second = _ids(SmartEvictionPolicy().rank(ctx))
        assert first == second == ["u0", "u1", "u2", "u3", "u4"]

    def test_custom_coefficients_change_ranking(self):
        """Priority-only weighting ranks purely by priority."""
        cfg = SmartPolicyConfig(recency_weight=0, frequency_weight=0, priority_weight=1)
        ctx = EvictionContext(
            candidates=[_unit("old-important", last_used_at=0, priority=9), _unit("new-minor", last_used_at=99, priority=1)]
        )
        assert _ids(SmartEvictionPolicy(cfg).rank(ctx)) == ["new-minor", "old-important"]

    def test_empty(self):
        assert SmartEvictionPolicy().rank(EvictionContext()) == []


# =============================================================================
# TestEvictionEngine
# =============================================================================


class TestEvictionEngine:
    """Greedy selection against a target."""

    def test_build_policy(self):
        for strategy in EvictionStrategy:
            assert build_policy(strategy).strategy == strategy

    def test_stops_once_target_met(self):
        engine = EvictionEngine(EvictionStrategy.LRU)
        units = [_unit("a", weight=30, last_used_at=1), _unit("b", weight=30, last_used_at=2), _unit("c", weight=30, last_used_at=3)]
        result = engine.select(units, target_free=40, now=10)
        assert result.removed == ["a", "b"]
        assert result.weight_freed == pytest.approx(60)
        assert result.satisfied
        assert result.warnings == []

    def test_exact_target(self):
        engine = EvictionEngine(EvictionStrategy.LRU)
        units = [_unit("a", weight=30, last_used_at=1), _unit("b", weight=30, last_used_at=2)]
        result = engine.select(units, target_free=30, now=10)
        assert result.removed == ["a"]

    def test_exhausted_candidates_warn(self):
        engine = EvictionEngine(EvictionStrategy.LRU)
        result = engine.select([_unit("a", weight=10)], target_free=50, now=10)
        assert result.removed == ["a"]
        assert not result.satisfied
        assert len(result.warnings) == 1
        assert "exhausted" in result.warnings[0]

    def test_no_candidates_warns(self):
        engine = EvictionEngine()
        result = engine.select([], target_free=5, now=0)
        assert result.removed == []
        assert result.warnings == ["No items available for removal"]

    def test_zero_target_selects_nothing(self):
        engine = EvictionEngine()
        result = engine.select([_unit("a")], target_free=0, now=0)
        assert result.removed == []
        assert result.satisfied

    def test_strategy_override(self):
        engine = EvictionEngine(EvictionStrategy.LRU)
        units = [_unit("old-hi", last_used_at=1, priority=9), _unit("new-lo", last_used_at=5, priority=1)]
        assert engine.select(units, target_free=5, now=10).removed == ["old-hi"]
        result = engine.select(units, target_free=5, now=10, strategy=EvictionStrategy.PRIORITY)
        assert result.removed == ["new-lo"]
        assert result.strategy == EvictionStrategy.PRIORITY

    def test_protected_ids_skipped(self):
        engine = EvictionEngine(EvictionStrategy.LRU)
        units = [_unit("a", last_used_at=1), _unit("b", last_used_at=2)]
        assert engine.select(units, target_free=5, now=10, protected={"a"}).removed == ["b"]

    def test_set_policy_replaces_strategy(self):
        class ReverseIdPolicy:
            strategy = EvictionStrategy.LRU

            def rank(self, context):
                units = sorted(context.eligible(), key=lambda u: u.id, reverse=True)
                return [EvictionCandidate(unit_id=u.id, weight=u.weight, score=0) for u in units]

        engine = EvictionEngine(EvictionStrategy.LRU)
        engine.set_policy(ReverseIdPolicy())
        assert isinstance(engine.get_policy(), ReverseIdPolicy)
        assert engine.select([_unit("a"), _unit("z")], target_free=5, now=0).removed == ["z"]
