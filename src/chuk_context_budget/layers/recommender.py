# chuk_context_budget/layers/recommender.py
"""
Layer recommendations from free-text context.

Scans a context string (a user message, a task description) for topic
tokens and ranks currently-inactive layers by how well their keywords,
name, description, tool names and string metadata values overlap it,
nudged by priority and past activation counts.

Pure/read-only: accepts everything as arguments and never mutates state.
Metadata is only read as text for matching; no value has meaning here.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from ..models import DEFAULT_RECOMMENDATION_LIMIT, Layer, LayerRecommendation

logger = logging.getLogger(__name__)

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


class LayerRecommender:
    """
    Keyword-overlap scorer for inactive layers.

    Usage::

        recommender = LayerRecommender()
        recs = recommender.recommend(
            "render a video with narration",
            layers=graph.all(),
            active_ids=active,
            activation_counts={k: s.activation_count for k, s in planner.statistics().items()},
            available_weight=ledger.max_weight - ledger.current_weight,
        )
    """

    keyword_score = 0.3
    name_score = 0.25
    tool_score = 0.15
    description_score = 0.1
    metadata_score = 0.05
    priority_bonus = 0.1
    usage_bonus_cap = 0.1

    def __init__(self, min_token_length: int = 3, priority_scale: float = 10.0) -> None:
        self._min_token_length = min_token_length
        self._priority_scale = priority_scale

    def extract_topics(self, text: str) -> set[str]:
        """Lower-cased alphanumeric tokens of at least ``min_token_length`` chars."""
        return {t for t in _TOKEN_SPLIT.split(text.lower()) if len(t) >= self._min_token_length}

    def score_layer(self, layer: Layer, topics: set[str]) -> tuple[float, list[str], list[str]]:
        """Return (raw score, matched terms, relevant tools) before bonuses."""
        score = 0.0
        matched: list[str] = []

        for keyword in sorted(layer.keywords):
            if self.extract_topics(keyword) & topics:
                score += self.keyword_score
                matched.append(keyword)

        name_hits = self.extract_topics(layer.display_name) & topics
        if name_hits:
            score += self.name_score
            matched.extend(sorted(name_hits - set(matched)))

        score += self.description_score * len(self.extract_topics(layer.description) & topics)

        relevant_tools = [tool for tool in sorted(layer.tools) if self.extract_topics(tool) & topics]
        score += self.tool_score * len(relevant_tools)

        for value in layer.metadata.values():
            if isinstance(value, str) and self.extract_topics(value) & topics:
                score += self.metadata_score

        return score, matched, relevant_tools

    def recommend(
        self,
        context: str,
        layers: Iterable[Layer],
        active_ids: Iterable[str] = (),
        activation_counts: Mapping[str, int] | None = None,
        available_weight: float | None = None,
        limit: int = DEFAULT_RECOMMENDATION_LIMIT,
    ) -> list[LayerRecommendation]:
        topics = self.extract_topics(context)
        if not topics or limit <= 0:
            return []

        active = set(active_ids)
        counts = activation_counts or {}
        ranked: list[tuple[float, float, str, LayerRecommendation]] = []

        for layer in layers:
            if layer.id in active:
                continue

            score, matched, relevant_tools = self.score_layer(layer, topics)
            if score <= 0:
                continue

            priority_norm = max(0.0, min(1.0, layer.priority / self._priority_scale))
            score += self.priority_bonus * priority_norm
            uses = counts.get(layer.id, 0)
            score += min(self.usage_bonus_cap, uses / 100)

            recommendation = LayerRecommendation(
                layer_id=layer.id,
                confidence=min(1.0, score),
                reason=self._reason(layer, context, matched, relevant_tools, uses),
                relevant_tools=relevant_tools,
                weight=layer.weight,
                fits_budget=available_weight is None or layer.weight <= available_weight,
            )
            ranked.append((-recommendation.confidence, -layer.priority, layer.id, recommendation))

        ranked.sort(key=lambda r: r[:3])
        return [r[3] for r in ranked[:limit]]

    def _reason(
        self,
        layer: Layer,
        context: str,
        matched: list[str],
        relevant_tools: list[str],
        uses: int,
    ) -> str:
        parts: list[str] = []
        if matched:
            parts.append(f"Matches {', '.join(matched[:3])}")
        if relevant_tools:
            parts.append(f"Contains relevant tools: {', '.join(relevant_tools[:3])}")
        if uses > 5:
            parts.append(f"Frequently used ({uses} times)")
        return ". ".join(parts) or f"May be useful for '{context.strip()[:40]}' tasks ({layer.display_name})"
