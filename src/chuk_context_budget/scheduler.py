# chuk_context_budget/scheduler.py
"""
ContextScheduler - public facade of the context budget subsystem.

Ties the budget and layer primitives into one per-session API:
- Item lifecycle (add, update, mark used, remove)
- Layer definitions, activation and deactivation
- Optimization under a ranking strategy
- Pressure tracking, history and notifications

Every mutation runs under one asyncio.Lock and never awaits inside it,
so readers always see the last committed state. Read-only methods are
plain synchronous calls and never wait on the lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .budget.clock import Clock, MonotonicClock
from .budget.eviction_policy import EvictionEngine, EvictionPolicy
from .budget.history import HistoryRecorder
from .budget.ledger import ResourceLedger
from .budget.notifications import NotificationHub, NotificationSink
from .budget.pressure import PressureMonitor
from .config import SchedulerConfig
from .exceptions import InvalidInputError, LayerRedefinitionError
from .layers.graph import LayerGraph
from .layers.planner import ActivationPlan, ActivationPlanner
from .layers.recommender import LayerRecommender
from .models import (
    DEFAULT_PRIORITY,
    DEFAULT_RECOMMENDATION_LIMIT,
    EvictionStrategy,
    HistoryEntry,
    HistorySummary,
    Layer,
    LayerActivationRequest,
    LayerActivationResult,
    LayerRecommendation,
    LayerStatistics,
    LedgerStatistics,
    NotificationKind,
    OptimizationResult,
    PressureLevel,
    Unit,
    UnitKind,
)

logger = logging.getLogger(__name__)


def _check_id(item_id: Any, what: str = "id") -> str:
    if not isinstance(item_id, str) or not item_id.strip():
        raise InvalidInputError(f"{what} must be a non-empty string", {what: item_id})
    return item_id


def _check_weight(weight: Any) -> float:
    if isinstance(weight, bool) or not isinstance(weight, int | float) or weight < 0:
        raise InvalidInputError("weight must be a non-negative number", {"weight": weight})
    return float(weight)


class ContextScheduler:
    """
    Resource-budget scheduler for tools and layers.

    One instance per caller/session; there is no module-level singleton.

    Usage::

        scheduler = ContextScheduler(SchedulerConfig(max_weight=8000))

        await scheduler.define_layer(Layer(id="core", weight=1200, required=True))
        await scheduler.define_layer(Layer(id="video", weight=3000, dependencies={"core"}))

        result = await scheduler.activate_layers(["video"])
        if not result.success:
            print(result.error, result.errors)
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        clock: Clock | None = None,
        recommender: LayerRecommender | None = None,
        policies: Iterable[EvictionPolicy] = (),
    ) -> None:
        self._config = config or SchedulerConfig()
        self._clock = clock or MonotonicClock()
        self._lock = asyncio.Lock()

        # Core data structures
        self._ledger = ResourceLedger(
            max_weight=self._config.max_weight,
            min_retention_seconds=self._config.min_retention_seconds,
            clock=self._clock,
        )
        self._graph = LayerGraph()
        self._engine = EvictionEngine(default_strategy=self._config.strategy)
        for policy in policies:
            self._engine.set_policy(policy)
        self._planner = ActivationPlanner(self._ledger, self._graph, self._engine)

        # Observation
        self._pressure = PressureMonitor(self._config.warning_threshold, self._config.critical_threshold)
        self._history = HistoryRecorder(capacity=self._config.history_capacity)
        self._hub = NotificationHub()
        self._recommender = recommender or LayerRecommender()

        logger.info(
            "Context scheduler initialized (max_weight=%g, strategy=%s, auto_optimize=%s)",
            self._config.max_weight,
            self._config.strategy.value,
            self._config.auto_optimize,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def current_weight(self) -> float:
        return self._ledger.current_weight

    @property
    def ledger(self) -> ResourceLedger:
        return self._ledger

    @property
    def graph(self) -> LayerGraph:
        return self._graph

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, kind: NotificationKind | None, sink: NotificationSink) -> None:
        """Register a sink for one event kind, or for all with ``None``."""
        self._hub.subscribe(kind, sink)

    def unsubscribe(self, kind: NotificationKind | None, sink: NotificationSink) -> bool:
        return self._hub.unsubscribe(kind, sink)

    def _after_commit(self) -> None:
        """Re-evaluate pressure; notify only on a level change."""
        transition = self._pressure.observe(self._ledger.current_weight, self._ledger.max_weight)
        if transition is None:
            return
        logger.info(
            "Context pressure %s -> %s (%g/%g)",
            transition.previous.label,
            transition.current.label,
            transition.weight,
            transition.max_weight,
        )
        self._hub.emit(
            NotificationKind.PRESSURE_CHANGED,
            previous=transition.previous,
            pressure=transition.current,
            weight=transition.weight,
            max_weight=transition.max_weight,
        )

    def _emit_layer_changes(self, result: LayerActivationResult) -> None:
        evicted_layers = set(result.evicted) & set(result.deactivated)
        for layer_id in result.deactivated:
            self._hub.emit(NotificationKind.ITEM_REMOVED, id=layer_id, kind=UnitKind.LAYER)
            self._hub.emit(NotificationKind.LAYER_DEACTIVATED, layer_id=layer_id, evicted=layer_id in evicted_layers)
        for unit_id in result.evicted:
            if unit_id not in evicted_layers:
                self._hub.emit(NotificationKind.ITEM_REMOVED, id=unit_id, kind=UnitKind.TOOL)
        for layer_id in result.activated:
            layer = self._graph.get(layer_id)
            self._hub.emit(
                NotificationKind.ITEM_ADDED,
                id=layer_id,
                kind=UnitKind.LAYER,
                weight=layer.weight if layer else 0.0,
            )
            self._hub.emit(NotificationKind.LAYER_ACTIVATED, layer_id=layer_id)
        if result.evicted:
            self._hub.emit(
                NotificationKind.OPTIMIZATION_PERFORMED,
                removed=list(result.evicted),
                weight_freed=result.freed_weight,
                new_weight=result.new_weight,
                trigger=result.action.value,
            )

    # ------------------------------------------------------------------
    # Item lifecycle
    # ------------------------------------------------------------------

    async def add_item(
        self,
        item_id: str,
        kind: UnitKind | str = UnitKind.TOOL,
        weight: float = 0.0,
        priority: float = DEFAULT_PRIORITY,
        required: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> Unit:
        """
        Track a unit, or replace the tracked state of an existing one.

        Direct upserts may push the total over ``max_weight``. With
        auto_optimize on, an overshoot triggers an optimize pass toward
        ``max_weight`` that never removes the item just added.
        """
        _check_id(item_id)
        weight = _check_weight(weight)
        try:
            kind = UnitKind(kind)
        except ValueError as e:
            raise InvalidInputError(f"Unknown unit kind: {kind!r}") from e

        async with self._lock:
            if item_id in self._graph:
                raise InvalidInputError(
                    f"'{item_id}' is a defined layer; use define_layer() and activate_layers() for it",
                    {"item_id": item_id},
                )

            existed = item_id in self._ledger
            unit = self._ledger.add_or_update(
                Unit(
                    id=item_id,
                    kind=kind,
                    weight=weight,
                    priority=priority,
                    required=required,
                    metadata=dict(metadata or {}),
                )
            )
            self._hub.emit(
                NotificationKind.ITEM_ADDED,
                id=item_id,
                kind=kind,
                weight=weight,
                updated=existed,
                total_weight=self._ledger.current_weight,
            )

            self._settle_overshoot(item_id)
            self._after_commit()
            return self._ledger.get(item_id) or unit

    async def remove_item(self, item_id: str) -> bool:
        """
        Stop tracking a unit. False if absent, required, or an active layer
        that other active layers still depend on.
        """
        async with self._lock:
            if self._planner.is_active(item_id):
                dependents = self._graph.find_dependents(
                    [item_id], [lid for lid in self._planner.active_ids if lid != item_id]
                )
                if dependents:
                    logger.warning(
                        "Refusing to remove layer %s: active dependents %s", item_id, sorted(dependents)
                    )
                    return False

            unit = self._ledger.get(item_id)
            if unit is None or not self._ledger.remove(item_id):
                return False

            was_layer = self._planner.is_active(item_id)
            self._planner.forget_removed(item_id)
            self._hub.emit(NotificationKind.ITEM_REMOVED, id=item_id, kind=unit.kind, weight=unit.weight)
            if was_layer:
                self._hub.emit(NotificationKind.LAYER_DEACTIVATED, layer_id=item_id, evicted=False)
            self._after_commit()
            return True

    async def mark_used(self, item_id: str) -> None:
        """Bump usage count and recency; no-op if the id is not tracked."""
        async with self._lock:
            self._ledger.mark_used(item_id)

    async def update_item(
        self,
        item_id: str,
        weight: float | None = None,
        priority: float | None = None,
        required: bool | None = None,
    ) -> Unit:
        """
        Change a tracked unit's weight, priority or required flag.

        A heavier weight is handled like an overshooting add_item. Active
        layers take their weight and required flag from their definition,
        so those change through define_layer().
        """
        if weight is not None:
            weight = _check_weight(weight)
        async with self._lock:
            if self._planner.is_active(item_id) and (weight is not None or required is not None):
                raise InvalidInputError(
                    f"'{item_id}' is an active layer; change its weight or required flag with define_layer()",
                    {"item_id": item_id},
                )
            unit = self._ledger.update(item_id, weight=weight, priority=priority, required=required)
            self._hub.emit(
                NotificationKind.ITEM_ADDED,
                id=item_id,
                kind=unit.kind,
                weight=unit.weight,
                updated=True,
                total_weight=self._ledger.current_weight,
            )
            self._settle_overshoot(item_id)
            self._after_commit()
            return self._ledger.get(item_id) or unit

    def _settle_overshoot(self, item_id: str) -> None:
        """Auto-optimize after a direct change pushed the total past max_weight."""
        if self._ledger.current_weight <= self._ledger.max_weight:
            return
        if self._config.auto_optimize:
            self._optimize_locked(self._ledger.max_weight, None, exclude={item_id}, reason="auto")
        if self._ledger.current_weight > self._ledger.max_weight:
            logger.warning(
                "Context weight %g exceeds budget %g after changing %s",
                self._ledger.current_weight,
                self._ledger.max_weight,
                item_id,
            )

    # ------------------------------------------------------------------
    # Budget queries
    # ------------------------------------------------------------------

    def can_add(self, weight: float) -> bool:
        return self._ledger.can_add(_check_weight(weight))

    def get_required_reduction(self, weight: float) -> float:
        return self._ledger.required_reduction(_check_weight(weight))

    # ------------------------------------------------------------------
    # Optimization
    # ------------------------------------------------------------------

    async def optimize(
        self,
        target_weight: float | None = None,
        strategy: EvictionStrategy | str | None = None,
    ) -> OptimizationResult:
        """
        Evict ranked units until weight is at or below ``target_weight``.

        Defaults to ``max_weight * warning_threshold``. Reports a warning,
        not an error, when removable units run out first.
        """
        target = self._config.default_optimize_target if target_weight is None else _check_weight(target_weight)
        chosen = self._parse_strategy(strategy)
        async with self._lock:
            result = self._optimize_locked(target, chosen, reason="optimize")
            self._after_commit()
            return result

    def _optimize_locked(
        self,
        target_weight: float,
        strategy: EvictionStrategy | None,
        exclude: Iterable[str] = (),
        reason: str = "optimize",
    ) -> OptimizationResult:
        result, deactivated = self._planner.optimize(target_weight, strategy, exclude)
        if not result.removed:
            return result

        for unit_id in result.removed:
            kind = UnitKind.LAYER if unit_id in deactivated else UnitKind.TOOL
            self._hub.emit(NotificationKind.ITEM_REMOVED, id=unit_id, kind=kind)
        for layer_id in deactivated:
            self._hub.emit(NotificationKind.LAYER_DEACTIVATED, layer_id=layer_id, evicted=True)
        self._hub.emit(
            NotificationKind.OPTIMIZATION_PERFORMED,
            removed=list(result.removed),
            weight_freed=result.weight_freed,
            new_weight=result.new_weight,
            strategy=result.strategy,
            trigger=reason,
        )
        self._history.record_optimization(result, reason=reason)
        return result

    @staticmethod
    def _parse_strategy(strategy: EvictionStrategy | str | None) -> EvictionStrategy | None:
        if strategy is None:
            return None
        try:
            return EvictionStrategy(strategy)
        except ValueError as e:
            raise InvalidInputError(f"Unknown eviction strategy: {strategy!r}") from e

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    async def define_layer(self, layer: Layer | Mapping[str, Any]) -> Layer:
        """
        Define or redefine a layer. Dependencies may name layers that are
        not defined yet; they are checked when the layer is activated.

        Redefining an active layer is checked against the active set: new
        dependencies must already be active, no new exclusivity may hit an
        active layer, and extra weight must fit the budget (other units are
        evicted when auto_optimize is on). Otherwise LayerRedefinitionError
        is raised and the old definition stays in place.
        """
        if not isinstance(layer, Layer):
            if isinstance(layer, Mapping):
                _check_id(layer.get("id"), "layer id")
            layer = Layer.model_validate(layer)
        _check_id(layer.id, "layer id")

        async with self._lock:
            if layer.id in self._ledger and not self._planner.is_active(layer.id):
                raise InvalidInputError(
                    f"'{layer.id}' is already tracked as an item; remove it before defining a layer with that id",
                    {"layer_id": layer.id},
                )
            plan = self._planner.plan_redefinition(layer, self._config.auto_optimize)
            if not plan.accepted:
                logger.warning("Redefinition of active layer %s rejected: %s", layer.id, "; ".join(plan.result.errors))
                raise LayerRedefinitionError(layer.id, plan.result)

            replaced = self._graph.define(layer)
            self._planner.refresh_definition(layer)
            if plan.to_evict:
                result = self._planner.commit(plan)
                self._emit_layer_changes(result)
                self._history.record_layer_result(result, [layer.id], "Layer redefinition", "system")
            logger.info(
                "Layer %s %s (weight=%g, dependencies=%s, exclusive_with=%s)",
                layer.id,
                "redefined" if replaced else "defined",
                layer.weight,
                sorted(layer.dependencies),
                sorted(layer.exclusive_with),
            )
            self._after_commit()
            return layer

    async def activate_layers(
        self,
        request: LayerActivationRequest | Iterable[str],
        **options: Any,
    ) -> LayerActivationResult:
        """
        Activate layers and their dependency closure, all or nothing.

        Accepts a LayerActivationRequest or a list of ids plus request
        options (``allow_auto_deactivate``, ``allow_optimize``, ``reason``,
        ``requested_by``).
        """
        if not isinstance(request, LayerActivationRequest):
            if isinstance(request, str):
                raise InvalidInputError("layer ids must be given as a list, not a string")
            request = LayerActivationRequest(layer_ids=list(request), **options)

        async with self._lock:
            plan = self._planner.plan_activation(request, self._config.auto_optimize)
            return self._finish(plan, request.layer_ids, request.reason, request.requested_by)

    async def activate_defaults(self) -> LayerActivationResult:
        """Activate every layer defined with ``load_by_default``."""
        ids = [layer.id for layer in self._graph.all() if layer.load_by_default]
        if not ids:
            return LayerActivationResult(success=True, new_weight=self._ledger.current_weight)
        return await self.activate_layers(
            LayerActivationRequest(layer_ids=ids, reason="Default layers", requested_by="system")
        )

    async def deactivate_layers(
        self,
        layer_ids: Iterable[str],
        allow_cascade: bool = True,
        reason: str = "Manual deactivation",
        requested_by: str = "unknown",
    ) -> LayerActivationResult:
        """
        Deactivate layers. Active dependents are deactivated too when
        ``allow_cascade`` is set, otherwise the request is rejected.
        """
        if isinstance(layer_ids, str):
            raise InvalidInputError("layer ids must be given as a list, not a string")
        ids = list(layer_ids)
        async with self._lock:
            plan = self._planner.plan_deactivation(ids, allow_cascade=allow_cascade)
            return self._finish(plan, ids, reason, requested_by)

    def _finish(
        self,
        plan: ActivationPlan,
        requested: list[str],
        reason: str,
        requested_by: str,
    ) -> LayerActivationResult:
        if not plan.accepted:
            result = plan.result
            logger.warning(
                "Layer %s rejected (%s): %s",
                result.action.value,
                result.error.value if result.error else "unknown",
                "; ".join(result.errors),
            )
            self._history.record_layer_result(result, requested, reason, requested_by)
            return result

        result = self._planner.commit(plan)
        self._emit_layer_changes(result)
        self._after_commit()
        self._history.record_layer_result(result, requested, reason, requested_by)
        return result

    def get_recommendations(
        self,
        context: str,
        limit: int = DEFAULT_RECOMMENDATION_LIMIT,
    ) -> list[LayerRecommendation]:
        """Rank inactive layers for a free-text context. Read-only."""
        return self._recommender.recommend(
            context,
            layers=self._graph.all(),
            active_ids=self._planner.active_ids,
            activation_counts={k: v.activation_count for k, v in self._planner.statistics().items()},
            available_weight=max(0.0, self._ledger.max_weight - self._ledger.current_weight),
            limit=limit,
        )

    def get_layer(self, layer_id: str) -> Layer | None:
        return self._graph.get(layer_id)

    def get_active_layers(self) -> list[Layer]:
        return [layer for lid in self._planner.active_ids if (layer := self._graph.get(lid)) is not None]

    def is_layer_active(self, layer_id: str) -> bool:
        return self._planner.is_active(layer_id)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> Unit | None:
        unit = self._ledger.get(item_id)
        return unit.model_copy() if unit is not None else None

    def get_all_items(self) -> list[Unit]:
        return [u.model_copy() for u in self._ledger.items()]

    def get_pressure(self) -> PressureLevel:
        return self._pressure.classify(self._ledger.current_weight, self._ledger.max_weight)

    def get_statistics(self) -> LedgerStatistics:
        return self._ledger.statistics(
            pressure=self.get_pressure(),
            top_n=self._config.top_n_heaviest,
            active_layers=self._planner.active_ids,
        )

    def get_layer_statistics(self) -> dict[str, LayerStatistics]:
        return self._planner.statistics()

    def get_history(self, limit: int | None = None) -> list[HistoryEntry]:
        return self._history.recent(limit)

    def get_history_summary(self) -> HistorySummary:
        return self._history.summary()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear(self) -> list[str]:
        """Drop every non-required unit that no required layer needs."""
        async with self._lock:
            removed, deactivated = self._planner.clear()
            for unit_id in removed:
                kind = UnitKind.LAYER if unit_id in deactivated else UnitKind.TOOL
                self._hub.emit(NotificationKind.ITEM_REMOVED, id=unit_id, kind=kind)
            for layer_id in deactivated:
                self._hub.emit(NotificationKind.LAYER_DEACTIVATED, layer_id=layer_id, evicted=False)
            logger.info("Context cleared: removed %d, remaining %d", len(removed), len(self._ledger))
            self._after_commit()
            return removed

    async def set_strategy(self, strategy: EvictionStrategy | str) -> None:
        chosen = self._parse_strategy(strategy)
        async with self._lock:
            self._config = self._config.model_copy(update={"strategy": chosen})
            self._engine.default_strategy = chosen
            logger.info("Eviction strategy changed to %s", chosen.value)

    async def update_config(self, **changes: Any) -> SchedulerConfig:
        """
        Apply config changes to the live instance.

        Raises pydantic's ValidationError for invalid values, leaving the
        current config untouched.
        """
        new_config = SchedulerConfig.model_validate({**self._config.model_dump(), **changes})
        async with self._lock:
            self._config = new_config
            self._ledger.max_weight = new_config.max_weight
            self._ledger.min_retention_seconds = new_config.min_retention_seconds
            self._engine.default_strategy = new_config.strategy
            self._pressure.set_thresholds(new_config.warning_threshold, new_config.critical_threshold)
            if new_config.history_capacity != self._history.capacity:
                self._history.resize(new_config.history_capacity)
            logger.info("Configuration updated: %s", sorted(changes))

            if new_config.auto_optimize and self._ledger.current_weight > new_config.max_weight:
                self._optimize_locked(new_config.max_weight, None, reason="config")
            self._after_commit()
            return new_config
