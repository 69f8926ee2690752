"""
Database models for Trackwatch
"""

from .base import Base
from .tracked_item import TrackedItem, TrackedTorrent

__all__ = ['Base', 'TrackedItem', 'TrackedTorrent']
