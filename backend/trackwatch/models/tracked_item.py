"""
Tracked Torrent Database Model for Trackwatch

This module defines the persistent record of a torrent page the user asked
to track, and the detached TrackedItem snapshot the engine passes around.

Features:
    - One row per tracker page URL
    - Last known content hash (the join key against the download client)
    - Last known save path, used when the download client cannot report it
    - Per-item watch interval in minutes (0 disables watching)
"""

from dataclasses import dataclass, replace
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import Session
from typing import Optional, List

from .base import Base


@dataclass(frozen=True)
class TrackedItem:
    """
    Detached snapshot of a tracked torrent.

    Safe to share between asyncio tasks and worker threads since it holds
    no database session state. Use `evolve()` to derive a modified copy.
    """
    id: Optional[int]
    url: str
    title: str = ""
    name: str = ""
    hash: str = ""
    save_path: str = ""
    watch_every: int = 0

    def evolve(self, **changes) -> 'TrackedItem':
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'url': self.url,
            'title': self.title,
            'name': self.name,
            'hash': self.hash,
            'save_path': self.save_path,
            'watch_every': self.watch_every,
        }


class TrackedTorrent(Base):
    """
    Database model for a tracked torrent page.

    Table Structure:
        - id: Primary key
        - url: Tracker page URL (unique)
        - title: Display title scraped from the page
        - name: Release name reported by the tracker
        - hash: Lowercase hex info-hash last seen on the tracker
        - save_path: Download directory last used in the download client
        - watch_every: Watch interval in minutes, 0 when not watched
    """

    __tablename__ = 'torrents'

    id = Column(Integer, primary_key=True, autoincrement=True)

    url = Column(String(1000), unique=True, nullable=False, index=True)
    title = Column(String(1000), nullable=True)
    name = Column(String(1000), nullable=True)
    hash = Column(String(64), nullable=True, index=True)
    save_path = Column(String(1000), nullable=True)
    watch_every = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<TrackedTorrent(id={self.id}, url='{self.url}', hash='{self.hash}')>"

    def to_item(self) -> TrackedItem:
        """Convert the row into a detached TrackedItem."""
        return TrackedItem(
            id=self.id,
            url=self.url,
            title=self.title or "",
            name=self.name or "",
            hash=(self.hash or "").lower(),
            save_path=self.save_path or "",
            watch_every=self.watch_every or 0,
        )

    def apply(self, item: TrackedItem) -> None:
        """Copy mutable fields from a TrackedItem onto the row."""
        self.url = item.url
        self.title = item.title
        self.name = item.name
        self.hash = item.hash.lower() if item.hash else item.hash
        self.save_path = item.save_path
        self.watch_every = item.watch_every

    # ===========================================================================
    # Query Methods
    # ===========================================================================

    @classmethod
    def get_all(cls, db: Session) -> List['TrackedTorrent']:
        """Get all tracked torrents ordered by id."""
        return db.query(cls).order_by(cls.id).all()

    @classmethod
    def get_by_id(cls, db: Session, torrent_id: int) -> Optional['TrackedTorrent']:
        """
        Get tracked torrent by ID.

        Args:
            db: SQLAlchemy database session
            torrent_id: Primary key

        Returns:
            TrackedTorrent if found, None otherwise
        """
        return db.query(cls).filter(cls.id == torrent_id).first()

    @classmethod
    def get_by_url(cls, db: Session, url: str) -> Optional['TrackedTorrent']:
        """Get tracked torrent by tracker page URL."""
        return db.query(cls).filter(cls.url == url).first()

    @classmethod
    def delete(cls, db: Session, torrent_id: int) -> bool:
        """
        Delete a tracked torrent.

        Returns:
            True if a row was deleted, False if it did not exist
        """
        row = cls.get_by_id(db, torrent_id)
        if not row:
            return False
        db.delete(row)
        db.commit()
        return True
