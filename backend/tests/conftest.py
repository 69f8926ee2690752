"""
Pytest configuration for backend tests.

This file configures pytest for the backend test suite, including
fixtures built on the in-memory fakes from fakes.py.
"""

import sys
from pathlib import Path

import pytest

# Add backend directory (for trackwatch) and this directory (for fakes) to the path
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import (  # noqa: E402
    FakeDownloadClient,
    FakeTrackerAdapter,
    InMemoryStore,
    RecordingNotifier,
)
from trackwatch.adapters.tracker_registry import TrackerRegistry  # noqa: E402
from trackwatch.services.event_feed import EventFeed  # noqa: E402
from trackwatch.services.reconciler import Reconciler  # noqa: E402


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


@pytest.fixture
def tracker():
    return FakeTrackerAdapter()


@pytest.fixture
def trackers(tracker):
    return TrackerRegistry([tracker])


@pytest.fixture
def client():
    return FakeDownloadClient()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def feed():
    return EventFeed()


@pytest.fixture
def reconciler(trackers, client, store, notifier, feed):
    return Reconciler(
        trackers=trackers,
        client=client,
        store=store,
        notifier=notifier,
        feed=feed,
        default_save_path="/downloads",
    )
