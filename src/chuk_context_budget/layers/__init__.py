# chuk_context_budget/layers/__init__.py
"""
Layer orchestration.

- LayerGraph: definitions, dependency closures, exclusivity, dependents
- ActivationPlanner: plans and commits activation/deactivation requests
- LayerRecommender: read-only keyword ranking of inactive layers
"""

from .graph import ClosureResolution, LayerGraph
from .planner import ActivationPlan, ActivationPlanner
from .recommender import LayerRecommender

__all__ = [
    "ActivationPlan",
    "ActivationPlanner",
    "ClosureResolution",
    "LayerGraph",
    "LayerRecommender",
]
