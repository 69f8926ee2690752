"""
Ingest Service

Manual addition of a tracker page URL.

Flow:
    1. Resolve the tracker for the URL (unknown host: failure, nothing stored)
    2. Fetch the current hash and list the download client
    3. Hash already in the client: duplicate, nothing stored
    4. Otherwise run the reconciler's add path and report the stored item
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from trackwatch.models.tracked_item import TrackedItem
from .exceptions import UnknownTrackerError

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_DUPLICATE = "duplicate"
STATUS_FAILURE = "failure"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of submit_url."""
    status: str
    item: Optional[TrackedItem] = None
    error: str = ""
    error_type: str = ""

    @property
    def ok(self) -> bool:
        return self.status != STATUS_FAILURE

    @classmethod
    def failure(cls, error: Exception) -> 'IngestResult':
        message = getattr(error, 'message', None) or str(error)
        return cls(status=STATUS_FAILURE, error=message, error_type=type(error).__name__)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'status': self.status}
        if self.item is not None:
            result['item'] = self.item.to_dict()
        if self.error:
            result['error'] = self.error
        return result


class IngestService:
    """
    Args:
        trackers: TrackerRegistry
        client: QBittorrentClient
        store: TrackedItemStore
        reconciler: Reconciler providing the add path
        default_save_path: Used when the caller gives no save path
    """

    def __init__(self, trackers, client, store, reconciler, default_save_path: str):
        self.trackers = trackers
        self.client = client
        self.store = store
        self.reconciler = reconciler
        self.default_save_path = default_save_path

    async def submit_url(self, url: str, save_path: str = "") -> IngestResult:
        url = (url or "").strip()
        save_path = (save_path or "").strip() or self.default_save_path

        try:
            self.trackers.resolve(url)
        except UnknownTrackerError as e:
            logger.warning(f"⚠ Rejected {url}: {e.message}")
            return IngestResult.failure(e)

        try:
            identity = await self.trackers.fetch_identity(url)
            entries = await self.client.list_entries()
            existing = await asyncio.to_thread(self.store.get_by_url, url)
        except Exception as e:
            logger.error(f"✗ Could not check {url}: {e}")
            return IngestResult.failure(e)

        if identity.hash in {entry.hash for entry in entries}:
            logger.info(f"Torrent {identity.hash} for {url} is already in the download client")
            return IngestResult(
                status=STATUS_DUPLICATE,
                item=existing,
                error="torrent already exists in download client",
            )

        item = existing or TrackedItem(id=None, url=url)
        try:
            stored = await self.reconciler.add(item, save_path, identity=identity)
        except Exception as e:
            logger.error(f"✗ Failed to add {url}: {e}")
            return IngestResult.failure(e)

        logger.info(f"✓ Tracking {url} as item {stored.id}")
        return IngestResult(status=STATUS_SUCCESS, item=stored)
