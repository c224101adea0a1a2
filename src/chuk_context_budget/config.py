# chuk_context_budget/config.py
from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from chuk_context_budget.models.enums import DEFAULT_TOP_N_HEAVIEST, EvictionStrategy

load_dotenv()

# Environment variable names
ENV_MAX_WEIGHT = "CHUK_CONTEXT_MAX_WEIGHT"
ENV_WARNING_THRESHOLD = "CHUK_CONTEXT_WARNING_THRESHOLD"
ENV_CRITICAL_THRESHOLD = "CHUK_CONTEXT_CRITICAL_THRESHOLD"
ENV_STRATEGY = "CHUK_CONTEXT_STRATEGY"
ENV_AUTO_OPTIMIZE = "CHUK_CONTEXT_AUTO_OPTIMIZE"
ENV_MIN_RETENTION_MS = "CHUK_CONTEXT_MIN_RETENTION_MS"
ENV_HISTORY_CAPACITY = "CHUK_CONTEXT_HISTORY_CAPACITY"

# Central defaults: can be overridden by environment variable
DEFAULT_MAX_WEIGHT = float(os.getenv(ENV_MAX_WEIGHT, "10000"))
DEFAULT_WARNING_THRESHOLD = float(os.getenv(ENV_WARNING_THRESHOLD, "0.75"))
DEFAULT_CRITICAL_THRESHOLD = float(os.getenv(ENV_CRITICAL_THRESHOLD, "0.9"))
DEFAULT_STRATEGY = os.getenv(ENV_STRATEGY, EvictionStrategy.SMART.value)
DEFAULT_MIN_RETENTION_MS = float(os.getenv(ENV_MIN_RETENTION_MS, "60000"))
DEFAULT_HISTORY_CAPACITY = int(os.getenv(ENV_HISTORY_CAPACITY, "500"))

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class SchedulerConfig(BaseModel):
    """Configuration for one scheduler instance."""

    max_weight: float = Field(default=DEFAULT_MAX_WEIGHT, gt=0, description="Hard budget ceiling")
    warning_threshold: float = Field(
        default=DEFAULT_WARNING_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Fraction of max_weight where pressure becomes WARNING",
    )
    critical_threshold: float = Field(
        default=DEFAULT_CRITICAL_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Fraction of max_weight where pressure becomes CRITICAL",
    )
    strategy: EvictionStrategy = Field(default=EvictionStrategy(DEFAULT_STRATEGY))
    auto_optimize: bool = Field(
        default=True,
        description="Evict to make room instead of rejecting over-budget activations",
    )
    min_retention_time: float = Field(
        default=DEFAULT_MIN_RETENTION_MS,
        ge=0,
        description="Milliseconds a unit must sit unused before it can be evicted",
    )
    history_capacity: int = Field(default=DEFAULT_HISTORY_CAPACITY, gt=0)
    top_n_heaviest: int = Field(default=DEFAULT_TOP_N_HEAVIEST, ge=0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> SchedulerConfig:
        if self.critical_threshold < self.warning_threshold:
            raise ValueError(
                f"critical_threshold ({self.critical_threshold}) must be >= "
                f"warning_threshold ({self.warning_threshold})"
            )
        return self

    @property
    def min_retention_seconds(self) -> float:
        return self.min_retention_time / 1000.0

    @property
    def default_optimize_target(self) -> float:
        """Weight an argument-less optimize() aims for."""
        return self.max_weight * self.warning_threshold

    @classmethod
    def from_env(cls, **overrides: Any) -> SchedulerConfig:
        """Build a config from ``CHUK_CONTEXT_*`` variables, then apply overrides."""
        values: dict[str, Any] = {
            "max_weight": float(os.getenv(ENV_MAX_WEIGHT, str(DEFAULT_MAX_WEIGHT))),
            "warning_threshold": float(os.getenv(ENV_WARNING_THRESHOLD, str(DEFAULT_WARNING_THRESHOLD))),
            "critical_threshold": float(os.getenv(ENV_CRITICAL_THRESHOLD, str(DEFAULT_CRITICAL_THRESHOLD))),
            "strategy": os.getenv(ENV_STRATEGY, DEFAULT_STRATEGY),
            "auto_optimize": _env_flag(ENV_AUTO_OPTIMIZE, True),
            "min_retention_time": float(os.getenv(ENV_MIN_RETENTION_MS, str(DEFAULT_MIN_RETENTION_MS))),
            "history_capacity": int(os.getenv(ENV_HISTORY_CAPACITY, str(DEFAULT_HISTORY_CAPACITY))),
        }
        values.update(overrides)
        return cls(**values)
