# chuk_context_budget/budget/pressure.py
"""Pressure classification and transition tracking."""

from __future__ import annotations

from ..models import PressureLevel, PressureTransition


def classify_pressure(
    current_weight: float,
    max_weight: float,
    warning_threshold: float,
    critical_threshold: float,
) -> PressureLevel:
    """Pure classification of consumption against fractional thresholds."""
    if max_weight <= 0:
        return PressureLevel.CRITICAL
    ratio = current_weight / max_weight
    if ratio >= critical_threshold:
        return PressureLevel.CRITICAL
    if ratio >= warning_threshold:
        return PressureLevel.WARNING
    return PressureLevel.NORMAL


class PressureMonitor:
    """
    Remembers the last observed level and reports only changes.

    Evaluating repeatedly at the same level yields nothing; crossing a
    threshold (either direction) yields one transition.
    """

    def __init__(self, warning_threshold: float, critical_threshold: float) -> None:
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self._level = PressureLevel.NORMAL

    @property
    def level(self) -> PressureLevel:
        return self._level

    def classify(self, current_weight: float, max_weight: float) -> PressureLevel:
        return classify_pressure(current_weight, max_weight, self.warning_threshold, self.critical_threshold)

    def observe(self, current_weight: float, max_weight: float) -> PressureTransition | None:
        level = self.classify(current_weight, max_weight)
        if level == self._level:
            return None

        transition = PressureTransition(
            previous=self._level,
            current=level,
            weight=current_weight,
            max_weight=max_weight,
        )
        self._level = level
        return transition

    def set_thresholds(self, warning_threshold: float, critical_threshold: float) -> None:
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
