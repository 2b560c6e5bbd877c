"""
Pytest fixtures and configuration for the test suite.

Every remote or hardware collaborator is replaced with an in-memory fake
from ``fakes.py``; everything inside the engine is real.
"""

import os
import sys
from pathlib import Path

import pytest

# Add backend/ to path so tests can import the tenjin package without installing
backend_root = Path(__file__).parent.parent / "backend"
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

# Keep tests independent of a developer's .env
os.environ.setdefault("GEMINI_API_KEY", "")
os.environ.setdefault("TELEGRAM_ENABLED", "false")

from fakes import (  # noqa: E402
    FakeAnalyzer,
    FakeCapture,
    FakeClock,
    FakeTransport,
    RecordingPresenter,
    RecordingSurface,
)
from tenjin.services.session_engine import SessionEngine  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def engine(transport, analyzer, capture, presenter, surface, clock):
    """Engine with real components and timers too slow to fire on their own."""
    return SessionEngine(
        transport=transport,
        analyzer=analyzer,
        capture=capture,
        presenter=presenter,
        surfaces=[surface],
        clock=clock,
        frame_interval=3600.0,
        deep_analysis_interval=3600.0,
        cooldown_seconds=30.0,
        dismiss_seconds=7.0,
        os_notifications_granted=True,
    )
