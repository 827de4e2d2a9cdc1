"""
Shared pytest fixtures and configuration for tickgate tests.

This module provides:
- ``src/`` on ``sys.path`` so tests run without an install
- A controllable UTC clock for deterministic schedule evaluation
- Log context cleanup between tests

Usage:
    def test_something(clock):
        clock.advance(seconds=5)
        assert clock() == T0 + timedelta(seconds=5)
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Ensure tickgate package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tickgate.core.logging import clear_context


T0 = datetime(2026, 1, 5, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, when: datetime) -> datetime:
        self.now = when
        return self.now


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at T0 (2026-01-05 12:00:00 UTC)."""
    return FakeClock()


@pytest.fixture(autouse=True)
def clean_log_context():
    """Drop any structlog context bound by the previous test."""
    clear_context()
    yield
    clear_context()


@pytest.fixture
def t0() -> datetime:
    """The instant the ``clock`` fixture starts at."""
    return T0
