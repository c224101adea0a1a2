# tests/test_config.py
"""Tests for SchedulerConfig defaults, validation and environment loading."""

import pytest
from pydantic import ValidationError

from chuk_context_budget.config import (
    ENV_AUTO_OPTIMIZE,
    ENV_MAX_WEIGHT,
    ENV_MIN_RETENTION_MS,
    ENV_STRATEGY,
    ENV_WARNING_THRESHOLD,
    SchedulerConfig,
)
from chuk_context_budget.models import EvictionStrategy


class TestSchedulerConfig:
    """Field validation and derived values."""

    def test_derived_values(self):
        config = SchedulerConfig(max_weight=200, warning_threshold=0.5, critical_threshold=0.8, min_retention_time=1500)
        assert config.min_retention_seconds == pytest.approx(1.5)
        assert config.default_optimize_target == pytest.approx(100)

    def test_critical_below_warning_rejected(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(warning_threshold=0.9, critical_threshold=0.5)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_weight", 0),
            ("warning_threshold", 1.5),
            ("critical_threshold", -0.1),
            ("min_retention_time", -1),
            ("history_capacity", 0),
            ("strategy", "random"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            SchedulerConfig(**{field: value})

    def test_strategy_from_string(self):
        assert SchedulerConfig(strategy="priority").strategy == EvictionStrategy.PRIORITY


class TestFromEnv:
    """CHUK_CONTEXT_* variables feed from_env()."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_MAX_WEIGHT, "4096")
        monkeypatch.setenv(ENV_WARNING_THRESHOLD, "0.6")
        monkeypatch.setenv(ENV_STRATEGY, "lfu")
        monkeypatch.setenv(ENV_AUTO_OPTIMIZE, "false")
        monkeypatch.setenv(ENV_MIN_RETENTION_MS, "0")

        config = SchedulerConfig.from_env()

        assert config.max_weight == 4096
        assert config.warning_threshold == pytest.approx(0.6)
        assert config.strategy == EvictionStrategy.LFU
        assert config.auto_optimize is False
        assert config.min_retention_time == 0

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv(ENV_MAX_WEIGHT, "4096")
        config = SchedulerConfig.from_env(max_weight=10)
        assert config.max_weight == 10

    @pytest.mark.parametrize("raw,expected", [("1", True), ("yes", True), ("ON", True), ("0", False), ("nope", False)])
    def test_flag_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv(ENV_AUTO_OPTIMIZE, raw)
        assert SchedulerConfig.from_env().auto_optimize is expected
