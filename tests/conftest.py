"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.fixtures.flows import (
    FakeTimerFactory,
    make_flow,
    scenario_a_snapshot,
)


@pytest.fixture
def timers():
    """Timer factory whose timers only fire when the test says so."""
    return FakeTimerFactory()


@pytest.fixture
def flow():
    """Empty flow for a 500,000 property."""
    return make_flow()


@pytest.fixture
def scenario_a():
    """Snapshot of 10% down and 100 auto-balanced monthly installments."""
    return scenario_a_snapshot()
