# tests/conftest.py
"""
Shared pytest fixtures and configuration for chuk_context_budget tests.

Time is driven by FakeClock so retention and recency ordering are
deterministic; nothing here sleeps.
"""

import logging

import pytest

from chuk_context_budget import ContextScheduler, SchedulerConfig
from chuk_context_budget.budget.ledger import ResourceLedger
from chuk_context_budget.models import EvictionStrategy

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("chuk_context_budget").setLevel(logging.DEBUG)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> float:
        self.current += seconds
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    """Ledger with max_weight=100 and no retention window."""
    return ResourceLedger(max_weight=100, min_retention_seconds=0, clock=clock)


@pytest.fixture
def config():
    return SchedulerConfig(
        max_weight=100,
        warning_threshold=0.7,
        critical_threshold=0.9,
        strategy=EvictionStrategy.LRU,
        auto_optimize=True,
        min_retention_time=0,
        history_capacity=50,
    )


@pytest.fixture
def scheduler(config, clock):
    return ContextScheduler(config, clock=clock)


@pytest.fixture
def recorder():
    """Collects notifications delivered to a sink."""
    received = []

    def sink(notification):
        received.append(notification)

    sink.received = received
    return sink


# Test markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
