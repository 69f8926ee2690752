"""
Tracker Adapters for Trackwatch

This package provides an abstraction layer for tracker-specific scraping,
so the reconciler can watch torrents on several trackers through a common
interface.

Available Adapters:
    - TrackerAdapter: Abstract base class defining the adapter contract
    - KinozalAdapter: kinozal.tv
    - RutrackerAdapter: rutracker.org

Supporting Classes:
    - TrackerRegistry: Resolves a page URL to the adapter for its host

Architecture:
    Reconciler → TrackerRegistry → TrackerAdapter (interface)
                                        ├── KinozalAdapter
                                        └── RutrackerAdapter
"""

from .tracker_adapter import TrackerAdapter, TorrentIdentity
from .kinozal_adapter import KinozalAdapter
from .rutracker_adapter import RutrackerAdapter
from .tracker_registry import TrackerRegistry

__all__ = [
    'TrackerAdapter',
    'TorrentIdentity',
    'KinozalAdapter',
    'RutrackerAdapter',
    'TrackerRegistry',
]
