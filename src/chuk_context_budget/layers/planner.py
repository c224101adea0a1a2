# chuk_context_budget/layers/planner.py
"""
Activation Planner.

Turns one activation, deactivation or optimize request into a plan and
commits it against the ledger and the active-layer set.

Planning is pure computation over in-memory state and never mutates
anything. A plan is either rejected (structured result, nothing changed)
or committed as a whole: removals first, then additions. There is no
partial activation.

Activation states per request:
    resolve -> conflict check -> project -> budget check -> commit
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from ..budget.eviction_policy import EvictionEngine
from ..budget.ledger import ResourceLedger
from ..exceptions import InvalidInputError, UnknownLayerError
from ..models import (
    EvictionStrategy,
    ExclusivityConflict,
    HistoryAction,
    Layer,
    LayerActivationRequest,
    LayerActivationResult,
    LayerStatistics,
    OptimizationResult,
    RejectionReason,
    SkippedLayer,
    SkipReason,
    UnitKind,
)
from .graph import LayerGraph

logger = logging.getLogger(__name__)


class ActivationPlan(BaseModel):
    """What a request will change. Only meaningful when ``result.success``."""

    result: LayerActivationResult
    to_activate: list[str] = Field(default_factory=list, description="Dependency-first")
    to_deactivate: list[str] = Field(default_factory=list, description="Dependents-first")
    to_evict: list[str] = Field(default_factory=list, description="Removal order from the engine")
    touch: list[str] = Field(default_factory=list, description="Already-active layers to mark used")

    @property
    def accepted(self) -> bool:
        return self.result.success


def _reject(
    action: HistoryAction,
    reason: RejectionReason,
    message: str,
    weight: float,
    **diagnostics,
) -> ActivationPlan:
    result = LayerActivationResult(
        success=False,
        action=action,
        error=reason,
        errors=[message],
        new_weight=weight,
        **diagnostics,
    )
    return ActivationPlan(result=result)


class ActivationPlanner:
    """
    Plans and commits layer changes.

    Owns the active-layer set and per-layer statistics. The ledger holds
    one LAYER unit for each active layer.
    """

    def __init__(self, ledger: ResourceLedger, graph: LayerGraph, engine: EvictionEngine) -> None:
        self._ledger = ledger
        self._graph = graph
        self._engine = engine
        self._active: dict[str, None] = {}
        self._stats: dict[str, LayerStatistics] = {}

    # ------------------------------------------------------------------
    # Active set
    # ------------------------------------------------------------------

    @property
    def active_ids(self) -> list[str]:
        """Active layer ids in activation order."""
        return list(self._active)

    def is_active(self, layer_id: str) -> bool:
        return layer_id in self._active

    def statistics(self) -> dict[str, LayerStatistics]:
        return {k: v.model_copy() for k, v in self._stats.items()}

    def _stats_for(self, layer_id: str) -> LayerStatistics:
        stats = self._stats.get(layer_id)
        if stats is None:
            stats = self._stats[layer_id] = LayerStatistics(layer_id=layer_id)
        return stats

    def _is_required(self, layer_id: str) -> bool:
        unit = self._ledger.get(layer_id)
        layer = self._graph.get(layer_id)
        return bool((unit is not None and unit.required) or (layer is not None and layer.required))

    def _teardown_order(self, layer_ids: Iterable[str]) -> list[str]:
        """Dependents before their dependencies."""
        ids = set(layer_ids)
        resolution = self._graph.resolve_closure(sorted(ids))
        ordered = [lid for lid in resolution.closure if lid in ids]
        ordered += sorted(ids - set(ordered))
        return list(reversed(ordered))

    def protected_dependencies(self, surviving: Iterable[str]) -> set[str]:
        """Layers that some surviving active layer depends on; never evicted."""
        return self._graph.dependencies_of(surviving)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_activation(
        self,
        request: LayerActivationRequest,
        auto_optimize: bool,
        strategy: EvictionStrategy | None = None,
    ) -> ActivationPlan:
        action = HistoryAction.ACTIVATE
        current = self._ledger.current_weight

        if not request.layer_ids:
            raise InvalidInputError("activate_layers requires at least one layer id")
        for layer_id in request.layer_ids:
            if not isinstance(layer_id, str) or not layer_id:
                raise InvalidInputError("Layer ids must be non-empty strings", {"layer_id": layer_id})
            if layer_id not in self._graph:
                raise UnknownLayerError(layer_id)

        # 1. Resolve
        resolution = self._graph.resolve_closure(request.layer_ids)
        if resolution.cyclic:
            return _reject(
                action,
                RejectionReason.CYCLIC_DEPENDENCY,
                f"Cyclic dependency: {' -> '.join(resolution.cycle)}",
                current,
                cyclic_ids=resolution.cycle,
            )
        if resolution.missing:
            return _reject(
                action,
                RejectionReason.DEPENDENCY_UNRESOLVED,
                f"Undefined dependencies: {', '.join(resolution.missing)}",
                current,
                missing=resolution.missing,
            )
        closure = resolution.closure
        closure_set = set(closure)

        # 2. Conflict check
        internal = self._graph.find_internal_conflicts(closure)
        if internal:
            return _reject(
                action,
                RejectionReason.EXCLUSIVITY_CONFLICT,
                "Requested layers are mutually exclusive with each other",
                current,
                conflicts=internal,
            )

        active = set(self._active)
        conflicts = self._graph.find_exclusivity_conflicts(closure, active - closure_set)
        doomed: set[str] = set()
        warnings: list[str] = []

        if conflicts:
            if not request.allow_auto_deactivate:
                return _reject(
                    action,
                    RejectionReason.EXCLUSIVITY_CONFLICT,
                    "Conflicting layers are active: "
                    + ", ".join(f"{c.requested} x {c.active}" for c in conflicts),
                    current,
                    conflicts=conflicts,
                )
            conflicting = {c.active for c in conflicts}
            doomed = conflicting | self._graph.find_dependents_closure(conflicting, active)

            blocked = self._blocked_conflicts(doomed, closure_set, conflicts)
            if blocked is not None:
                return blocked

            warnings.append(f"Auto-deactivating conflicting layers: {', '.join(sorted(doomed))}")

        to_deactivate = self._teardown_order(doomed)
        to_activate = [lid for lid in closure if lid not in active]
        touch = [lid for lid in dict.fromkeys(request.layer_ids) if lid in active]

        # 3. Project
        added = sum(self._graph.require(lid).weight for lid in to_activate)
        projected = current - self._ledger.weight_of([*to_deactivate, *to_activate]) + added

        # 4. Budget check
        to_evict: list[str] = []
        max_weight = self._ledger.max_weight
        if projected > max_weight:
            shortfall = projected - max_weight
            may_optimize = auto_optimize if request.allow_optimize is None else request.allow_optimize
            if not may_optimize:
                return _reject(
                    action,
                    RejectionReason.BUDGET_EXCEEDED,
                    f"Activation would exceed budget ({projected:g}/{max_weight:g})",
                    current,
                    required_reduction=shortfall,
                    conflicts=conflicts,
                )

            surviving = (active - doomed) | closure_set
            protected = closure_set | doomed | self.protected_dependencies(surviving)
            selection = self._engine.select(
                self._ledger.removable(exclude=protected),
                target_free=shortfall,
                now=self._ledger.clock.now(),
                strategy=strategy,
            )
            if not selection.satisfied:
                return _reject(
                    action,
                    RejectionReason.BUDGET_EXCEEDED,
                    f"Activation would exceed budget ({projected:g}/{max_weight:g}) "
                    f"and eviction freed only {selection.weight_freed:g}",
                    current,
                    required_reduction=shortfall - selection.weight_freed,
                    warnings=selection.warnings,
                    conflicts=conflicts,
                )
            to_evict = selection.removed
            warnings.append(f"Evicting {len(to_evict)} units to stay within budget")

        result = LayerActivationResult(
            success=True,
            action=action,
            skipped=[SkippedLayer(layer_id=lid, reason=SkipReason.ALREADY_ACTIVE) for lid in touch],
            conflicts=conflicts,
            warnings=warnings,
        )
        return ActivationPlan(
            result=result,
            to_activate=to_activate,
            to_deactivate=to_deactivate,
            to_evict=to_evict,
            touch=touch,
        )

    def _blocked_conflicts(
        self,
        doomed: set[str],
        closure: set[str],
        conflicts: list[ExclusivityConflict],
    ) -> ActivationPlan | None:
        """Reject auto-deactivation that would hit required layers or the closure itself."""
        current = self._ledger.current_weight
        required = sorted(lid for lid in doomed if self._is_required(lid))
        if required:
            return _reject(
                HistoryAction.ACTIVATE,
                RejectionReason.EXCLUSIVITY_CONFLICT,
                f"Conflicting required layers cannot be deactivated: {', '.join(required)}",
                current,
                conflicts=conflicts,
                blocking=required,
            )
        overlap = sorted(doomed & closure)
        if overlap:
            return _reject(
                HistoryAction.ACTIVATE,
                RejectionReason.EXCLUSIVITY_CONFLICT,
                f"Resolving the conflict would deactivate requested layers: {', '.join(overlap)}",
                current,
                conflicts=conflicts,
                blocking=overlap,
            )
        return None

    def plan_deactivation(self, layer_ids: Iterable[str], allow_cascade: bool = True) -> ActivationPlan:
        action = HistoryAction.DEACTIVATE
        current = self._ledger.current_weight

        requested = list(dict.fromkeys(layer_ids))
        for layer_id in requested:
            if not isinstance(layer_id, str) or not layer_id:
                raise InvalidInputError("Layer ids must be non-empty strings", {"layer_id": layer_id})
            if layer_id not in self._graph:
                raise UnknownLayerError(layer_id)

        targets = [lid for lid in requested if lid in self._active]
        skipped = [SkippedLayer(layer_id=lid, reason=SkipReason.NOT_ACTIVE) for lid in requested if lid not in self._active]

        required = sorted(lid for lid in targets if self._is_required(lid))
        if required:
            return _reject(
                action,
                RejectionReason.REQUIRED_LAYER,
                f"Required layers cannot be deactivated: {', '.join(required)}",
                current,
                blocking=required,
            )

        warnings: list[str] = []
        dependents = self._graph.find_dependents_closure(targets, self._active)
        if dependents:
            if not allow_cascade:
                return _reject(
                    action,
                    RejectionReason.DEPENDENT_ACTIVE,
                    f"Active layers depend on the request: {', '.join(sorted(dependents))}",
                    current,
                    blocking=sorted(dependents),
                )
            required_dependents = sorted(lid for lid in dependents if self._is_required(lid))
            if required_dependents:
                return _reject(
                    action,
                    RejectionReason.REQUIRED_LAYER,
                    f"Required layers depend on the request: {', '.join(required_dependents)}",
                    current,
                    blocking=required_dependents,
                )
            warnings.append(f"Deactivating dependent layers: {', '.join(sorted(dependents))}")

        result = LayerActivationResult(success=True, action=action, skipped=skipped, warnings=warnings)
        return ActivationPlan(result=result, to_deactivate=self._teardown_order({*targets, *dependents}))

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, plan: ActivationPlan) -> LayerActivationResult:
        """
        Apply an accepted plan: deactivations, evictions, then activations.

        Planning already excluded required units, so every removal here
        succeeds; the whole plan lands before control returns.
        """
        result = plan.result
        if not plan.accepted:
            return result

        weight_before = self._ledger.current_weight
        removed_weight = 0.0

        for layer_id in plan.to_deactivate:
            removed_weight += self._drop_layer(layer_id, result)

        for unit_id in plan.to_evict:
            unit = self._ledger.get(unit_id)
            if unit is None or not self._ledger.remove(unit_id):
                continue
            removed_weight += unit.weight
            result.evicted.append(unit_id)
            if unit.kind == UnitKind.LAYER and unit_id in self._active:
                self._forget_active(unit_id, result)

        now = self._ledger.clock.now()
        for layer_id in plan.to_activate:
            layer = self._graph.require(layer_id)
            self._ledger.add_or_update(layer.to_unit(now))
            self._active[layer_id] = None
            result.activated.append(layer_id)
            result.activated_tools.extend(sorted(layer.tools))

            stats = self._stats_for(layer_id)
            stats.activation_count += 1
            stats.last_activated = datetime.now(UTC)
            stats.active_since = now

        for layer_id in plan.touch:
            self._ledger.mark_used(layer_id)

        result.freed_weight = removed_weight
        result.new_weight = self._ledger.current_weight

        logger.info(
            "Layers %s: +%s -%s evicted=%s weight %g -> %g",
            result.action.value,
            result.activated,
            result.deactivated,
            result.evicted,
            weight_before,
            result.new_weight,
        )
        return result

    def _drop_layer(self, layer_id: str, result: LayerActivationResult) -> float:
        unit = self._ledger.get(layer_id)
        weight = unit.weight if unit is not None else 0.0
        if unit is not None and not self._ledger.remove(layer_id):
            return 0.0
        self._forget_active(layer_id, result)
        return weight

    def _forget_active(self, layer_id: str, result: LayerActivationResult | None = None) -> None:
        self._active.pop(layer_id, None)

        stats = self._stats_for(layer_id)
        stats.deactivation_count += 1
        if stats.active_since is not None:
            stats.total_active_seconds += max(0.0, self._ledger.clock.now() - stats.active_since)
            stats.active_since = None

        if result is not None:
            result.deactivated.append(layer_id)
            layer = self._graph.get(layer_id)
            if layer is not None:
                result.deactivated_tools.extend(sorted(layer.tools))

    def forget_removed(self, layer_id: str) -> None:
        """Bookkeeping after a layer unit was removed from the ledger directly."""
        if layer_id in self._active:
            self._forget_active(layer_id)

    # ------------------------------------------------------------------
    # Optimize
    # ------------------------------------------------------------------

    def optimize(
        self,
        target_weight: float,
        strategy: EvictionStrategy | None = None,
        exclude: Iterable[str] = (),
    ) -> tuple[OptimizationResult, list[str]]:
        """
        Evict ranked units until total weight is at or below ``target_weight``.

        Returns the result and the layer ids that were deactivated by it.
        Layers another active layer depends on are left in place.
        """
        chosen = EvictionStrategy(strategy or self._engine.default_strategy)
        current = self._ledger.current_weight
        result = OptimizationResult(new_weight=current, strategy=chosen)

        weight_to_free = max(0.0, current - target_weight)
        if weight_to_free <= 0:
            result.warnings.append("No optimization needed")
            return result, []

        protected = set(exclude) | self.protected_dependencies(self._active)
        selection = self._engine.select(
            self._ledger.removable(exclude=protected),
            target_free=weight_to_free,
            now=self._ledger.clock.now(),
            strategy=chosen,
        )
        result.warnings.extend(selection.warnings)

        deactivated: list[str] = []
        for unit_id in selection.removed:
            unit = self._ledger.get(unit_id)
            if unit is None or not self._ledger.remove(unit_id):
                continue
            result.removed.append(unit_id)
            result.weight_freed += unit.weight
            if unit.kind == UnitKind.LAYER and unit_id in self._active:
                self._forget_active(unit_id)
                deactivated.append(unit_id)

        result.new_weight = self._ledger.current_weight
        if result.removed:
            logger.info(
                "Context optimized (%s): removed %s, freed %g, weight now %g",
                chosen.value,
                result.removed,
                result.weight_freed,
                result.new_weight,
            )
        return result, deactivated

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def plan_redefinition(self, layer: Layer, auto_optimize: bool) -> ActivationPlan:
        """
        Check a new definition of an active layer against the active set.

        New dependencies must be defined, acyclic and already active; the
        layer may not become exclusive with another active layer; extra
        weight must fit the budget, evicting other units when optimization
        is allowed. Inactive layers are accepted as-is.
        """
        action = HistoryAction.ACTIVATE
        current = self._ledger.current_weight
        if layer.id not in self._active:
            return ActivationPlan(result=LayerActivationResult(success=True, action=action, new_weight=current))

        missing = sorted(dep for dep in layer.dependencies if dep not in self._graph)
        if missing:
            return _reject(
                action,
                RejectionReason.DEPENDENCY_UNRESOLVED,
                f"Undefined dependencies: {', '.join(missing)}",
                current,
                missing=missing,
            )

        reachable: set[str] = set()
        frontier = set(layer.dependencies)
        while frontier:
            if layer.id in frontier:
                return _reject(
                    action,
                    RejectionReason.CYCLIC_DEPENDENCY,
                    f"Layer '{layer.id}' would depend on itself",
                    current,
                    cyclic_ids=[layer.id, *sorted((reachable | frontier) - {layer.id}), layer.id],
                )
            reachable |= frontier
            frontier = self._graph.dependencies_of(frontier) - reachable

        inactive = sorted(dep for dep in layer.dependencies if dep not in self._active)
        if inactive:
            return _reject(
                action,
                RejectionReason.DEPENDENCY_UNRESOLVED,
                f"Layer '{layer.id}' is active but its new dependencies are not: {', '.join(inactive)}",
                current,
                blocking=inactive,
            )

        conflicts = [
            ExclusivityConflict(requested=layer.id, active=active_id)
            for active_id in sorted(self._active)
            if active_id != layer.id
            and (
                layer.declares_exclusive(active_id)
                or ((other := self._graph.get(active_id)) is not None and other.declares_exclusive(layer.id))
            )
        ]
        if conflicts:
            return _reject(
                action,
                RejectionReason.EXCLUSIVITY_CONFLICT,
                f"Layer '{layer.id}' would be exclusive with active layers: "
                + ", ".join(c.active for c in conflicts),
                current,
                conflicts=conflicts,
            )

        result = LayerActivationResult(success=True, action=action, new_weight=current)
        unit = self._ledger.get(layer.id)
        projected = current - (unit.weight if unit is not None else 0.0) + layer.weight
        max_weight = self._ledger.max_weight
        if projected <= max_weight:
            return ActivationPlan(result=result)

        shortfall = projected - max_weight
        if not auto_optimize:
            return _reject(
                action,
                RejectionReason.BUDGET_EXCEEDED,
                f"Redefinition would exceed budget ({projected:g}/{max_weight:g})",
                current,
                required_reduction=shortfall,
            )

        protected = {layer.id} | set(layer.dependencies) | self.protected_dependencies(self._active)
        selection = self._engine.select(
            self._ledger.removable(exclude=protected),
            target_free=shortfall,
            now=self._ledger.clock.now(),
        )
        if not selection.satisfied:
            return _reject(
                action,
                RejectionReason.BUDGET_EXCEEDED,
                f"Redefinition would exceed budget ({projected:g}/{max_weight:g}) "
                f"and eviction freed only {selection.weight_freed:g}",
                current,
                required_reduction=shortfall - selection.weight_freed,
                warnings=selection.warnings,
            )
        result.warnings.append(f"Evicting {len(selection.removed)} units to fit the new weight of '{layer.id}'")
        return ActivationPlan(result=result, to_evict=selection.removed)

    def refresh_definition(self, layer: Layer) -> None:
        """Sync the ledger unit of an active layer with an accepted new definition."""
        if layer.id not in self._active:
            return
        unit = self._ledger.get(layer.id)
        if unit is not None and (
            unit.weight != layer.weight or unit.priority != layer.priority or unit.required != layer.required
        ):
            self._ledger.update(layer.id, weight=layer.weight, priority=layer.priority, required=layer.required)

    def clear(self) -> tuple[list[str], list[str]]:
        """
        Remove every non-required unit that no required layer depends on.

        Returns (removed unit ids, deactivated layer ids).
        """
        survivors = [lid for lid in self._active if self._is_required(lid)]
        keep = set(survivors)
        frontier = set(survivors)
        while frontier:
            deps = self._graph.dependencies_of(frontier) - keep
            keep |= deps
            frontier = deps

        removed: list[str] = []
        deactivated: list[str] = []
        for unit in self._ledger.items():
            if unit.required or unit.id in keep:
                continue
            if self._ledger.remove(unit.id):
                removed.append(unit.id)
                if unit.id in self._active:
                    self._forget_active(unit.id)
                    deactivated.append(unit.id)
        return removed, deactivated
