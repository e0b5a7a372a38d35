"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Any

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cloudtables.lib.config_loader import EngineSettings  # noqa: E402
from cloudtables.lib.query import QueryEngine  # noqa: E402
from cloudtables.tables import build_registry  # noqa: E402
from tests.fakes import FIXED_NOW, FakeTransport  # noqa: E402


@pytest.fixture
def fake_transport():
    """Provide an empty scripted transport."""
    return FakeTransport()


@pytest.fixture
def registry():
    """Provide the full table registry."""
    return build_registry()


@pytest.fixture
def make_engine(registry, fake_transport):
    """Build a query engine over the fake transport."""

    def _make(**settings: Any) -> QueryEngine:
        return QueryEngine(registry, fake_transport, EngineSettings(**settings))

    return _make


@pytest.fixture
def fixed_now():
    """Provide a fixed query time."""
    return FIXED_NOW
