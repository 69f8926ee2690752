"""
Tracked Item Store

Persistence boundary for tracked torrents. Every call opens its own
SQLAlchemy session so the store can be used concurrently from worker
threads (callers on the event loop wrap calls in asyncio.to_thread).
"""

import logging
from typing import Callable, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from trackwatch.models.tracked_item import TrackedItem, TrackedTorrent

logger = logging.getLogger(__name__)


class TrackedItemStore:
    """
    CRUD operations on tracked torrents, returning detached TrackedItem snapshots.

    Args:
        session_factory: Callable returning a new SQLAlchemy Session
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def list_items(self) -> List[TrackedItem]:
        """Return every tracked item. Errors propagate to the caller."""
        db = self._session_factory()
        try:
            return [row.to_item() for row in TrackedTorrent.get_all(db)]
        finally:
            db.close()

    def get_item(self, item_id: int) -> Optional[TrackedItem]:
        db = self._session_factory()
        try:
            row = TrackedTorrent.get_by_id(db, item_id)
            return row.to_item() if row else None
        finally:
            db.close()

    def get_by_url(self, url: str) -> Optional[TrackedItem]:
        db = self._session_factory()
        try:
            row = TrackedTorrent.get_by_url(db, url)
            return row.to_item() if row else None
        finally:
            db.close()

    def upsert_item(self, item: TrackedItem) -> TrackedItem:
        """
        Insert or update a tracked item.

        Items with an id update that row. Items without one are matched by
        URL, so re-submitting a known page updates the existing record instead
        of failing on the unique URL. A deleted row is never re-created.

        Returns:
            The stored item, with its id assigned

        Raises:
            LookupError: The item has an id but its row was deleted
        """
        db = self._session_factory()
        try:
            if item.id is not None:
                row = TrackedTorrent.get_by_id(db, item.id)
                if row is None:
                    raise LookupError(f"tracked torrent {item.id} no longer exists")
            else:
                row = TrackedTorrent.get_by_url(db, item.url)

            if row is None:
                row = TrackedTorrent()
                row.apply(item)
                db.add(row)
                action = "Created"
            else:
                # The watch interval is owned by set_watch_interval; keep the stored one
                row.apply(item.evolve(watch_every=row.watch_every or 0))
                action = "Updated"

            db.commit()
            db.refresh(row)
            logger.debug(f"{action} tracked torrent {row.id} ({row.url})")
            return row.to_item()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete_item(self, item_id: int) -> bool:
        db = self._session_factory()
        try:
            return TrackedTorrent.delete(db, item_id)
        finally:
            db.close()

    def ping(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        db = self._session_factory()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()

    def set_watch_interval(self, item_id: int, minutes: int) -> bool:
        """
        Set the watch interval of an item.

        Returns:
            True if the item exists, False otherwise
        """
        db = self._session_factory()
        try:
            row = TrackedTorrent.get_by_id(db, item_id)
            if not row:
                return False
            row.watch_every = minutes
            db.commit()
            return True
        finally:
            db.close()
