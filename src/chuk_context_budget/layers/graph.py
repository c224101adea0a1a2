# chuk_context_budget/layers/graph.py
"""
Layer Graph.

Holds layer definitions and answers structural questions about them:
dependency closures, cycles, exclusivity conflicts and dependents.
It holds no activation state; callers pass the active set in.

Definitions may reference layers that are not defined yet. Missing
dependencies are only reported when a closure is resolved.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel, Field

from ..exceptions import UnknownLayerError
from ..models import ExclusivityConflict, Layer

logger = logging.getLogger(__name__)

_VISITING = 1
_DONE = 2


class ClosureResolution(BaseModel):
    """Result of expanding requested layers to their dependency closure."""

    closure: list[str] = Field(default_factory=list, description="Dependency-first order")
    missing: list[str] = Field(default_factory=list, description="Referenced but undefined ids")
    cyclic: bool = False
    cycle: list[str] = Field(default_factory=list, description="One offending cycle, first id repeated last")

    @property
    def ok(self) -> bool:
        return not self.missing and not self.cyclic


class LayerGraph:
    """Layer definitions plus dependency and exclusivity queries."""

    def __init__(self) -> None:
        self._layers: dict[str, Layer] = {}

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._layers

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def define(self, layer: Layer) -> bool:
        """Upsert a definition. Returns True if it replaced an existing one."""
        replaced = layer.id in self._layers
        if replaced:
            logger.debug("Layer %s already defined, updating", layer.id)
        self._layers[layer.id] = layer
        return replaced

    def get(self, layer_id: str) -> Layer | None:
        return self._layers.get(layer_id)

    def require(self, layer_id: str) -> Layer:
        layer = self._layers.get(layer_id)
        if layer is None:
            raise UnknownLayerError(layer_id)
        return layer

    def all(self) -> list[Layer]:
        return list(self._layers.values())

    def ids(self) -> list[str]:
        return list(self._layers)

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def resolve_closure(self, layer_ids: Iterable[str]) -> ClosureResolution:
        """
        Expand ``layer_ids`` to their transitive dependency closure.

        Dependencies come before the layers that need them. Undefined ids
        are collected in ``missing`` and not traversed further. Any cycle
        reachable from the request sets ``cyclic``.
        """
        state: dict[str, int] = {}
        order: list[str] = []
        missing: list[str] = []
        cycle: list[str] = []

        for root in layer_ids:
            if root in state:
                continue
            if root not in self._layers:
                if root not in missing:
                    missing.append(root)
                continue

            path: list[str] = [root]
            stack = [(root, iter(sorted(self._layers[root].dependencies)))]
            state[root] = _VISITING

            while stack:
                node, deps = stack[-1]
                dep = next(deps, None)
                if dep is None:
                    stack.pop()
                    path.pop()
                    state[node] = _DONE
                    order.append(node)
                    continue

                if dep not in self._layers:
                    if dep not in missing:
                        missing.append(dep)
                    continue

                seen = state.get(dep)
                if seen == _VISITING:
                    if not cycle:
                        cycle = [*path[path.index(dep) :], dep]
                    continue
                if seen == _DONE:
                    continue

                state[dep] = _VISITING
                path.append(dep)
                stack.append((dep, iter(sorted(self._layers[dep].dependencies))))

        return ClosureResolution(closure=order, missing=missing, cyclic=bool(cycle), cycle=cycle)

    def dependencies_of(self, layer_ids: Iterable[str]) -> set[str]:
        """Direct dependencies declared by any of ``layer_ids``."""
        deps: set[str] = set()
        for layer_id in layer_ids:
            layer = self._layers.get(layer_id)
            if layer is not None:
                deps |= layer.dependencies
        return deps

    def find_dependents(self, layer_ids: Iterable[str], active_ids: Iterable[str] | None = None) -> set[str]:
        """
        Layers that declare any of ``layer_ids`` as a direct dependency.

        Restricted to ``active_ids`` when given.
        """
        targets = set(layer_ids)
        pool = self._layers.keys() if active_ids is None else set(active_ids)
        dependents: set[str] = set()
        for layer_id in pool:
            layer = self._layers.get(layer_id)
            if layer is not None and layer_id not in targets and layer.dependencies & targets:
                dependents.add(layer_id)
        return dependents

    def find_dependents_closure(
        self, layer_ids: Iterable[str], active_ids: Iterable[str] | None = None
    ) -> set[str]:
        """Transitive dependents of ``layer_ids`` (excluding the ids themselves)."""
        start = set(layer_ids)
        frontier = set(start)
        found: set[str] = set()
        while frontier:
            layer_dependents = self.find_dependents(frontier, active_ids) - found - start
            found |= layer_dependents
            frontier = layer_dependents
        return found

    # ------------------------------------------------------------------
    # Exclusivity
    # ------------------------------------------------------------------

    def are_exclusive(self, a: str, b: str) -> bool:
        """True if either layer declares the other exclusive."""
        if a == b:
            return False
        layer_a = self._layers.get(a)
        layer_b = self._layers.get(b)
        return bool(
            (layer_a is not None and layer_a.declares_exclusive(b))
            or (layer_b is not None and layer_b.declares_exclusive(a))
        )

    def find_exclusivity_conflicts(
        self, layer_ids: Iterable[str], active_ids: Iterable[str]
    ) -> list[ExclusivityConflict]:
        """Every (requested-or-dependency, active) pair declared exclusive."""
        active = sorted(set(active_ids))
        conflicts: list[ExclusivityConflict] = []
        for layer_id in dict.fromkeys(layer_ids):
            for active_id in active:
                if self.are_exclusive(layer_id, active_id):
                    conflicts.append(ExclusivityConflict(requested=layer_id, active=active_id))
        return conflicts

    def find_internal_conflicts(self, layer_ids: Iterable[str]) -> list[ExclusivityConflict]:
        """Exclusive pairs that both sit inside ``layer_ids``."""
        ids = list(dict.fromkeys(layer_ids))
        conflicts: list[ExclusivityConflict] = []
        for i, a in enumerate(ids):
            for b in ids[i + 1 :]:
                if self.are_exclusive(a, b):
                    conflicts.append(ExclusivityConflict(requested=a, active=b))
        return conflicts
