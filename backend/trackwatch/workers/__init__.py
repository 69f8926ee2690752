"""
Background Workers

This package contains the supervisor loop and the per-item watchers.
"""

from .supervisor import Supervisor
from .watch_registry import Watcher, WatchRegistry

__all__ = ['Supervisor', 'Watcher', 'WatchRegistry']
