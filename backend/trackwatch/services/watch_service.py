"""
Watch Service

Front-end facade over the engine. Routes call only this class.
"""

import asyncio
import logging
from typing import Any, Dict, List

from trackwatch.models.tracked_item import TrackedItem
from .event_feed import EventFeed, MESSAGE_REMOVED
from .exceptions import EntryNotFoundError
from .ingest_service import IngestResult, IngestService

logger = logging.getLogger(__name__)


class WatchService:
    """
    Args:
        store: TrackedItemStore
        client: QBittorrentClient
        ingest: IngestService
        feed: EventFeed
    """

    def __init__(self, store, client, ingest: IngestService, feed: EventFeed):
        self.store = store
        self.client = client
        self.ingest = ingest
        self.feed = feed

    async def submit_url(self, url: str, save_path: str = "") -> IngestResult:
        return await self.ingest.submit_url(url, save_path)

    async def list_tracked_items(self) -> List[TrackedItem]:
        return await asyncio.to_thread(self.store.list_items)

    async def remove_item(self, item_id: int) -> TrackedItem:
        """
        Remove a torrent and its files from the download client, then forget it.

        Raises:
            LookupError: Unknown item id
            TrackwatchError: Download client failure (the record is kept)
        """
        item = await asyncio.to_thread(self.store.get_item, item_id)
        if item is None:
            raise LookupError(f"torrent {item_id} not found")

        if item.hash:
            try:
                await self.client.remove(item.hash, delete_files=True)
            except EntryNotFoundError:
                logger.info(f"Torrent {item.hash} was already gone from the download client")

        await asyncio.to_thread(self.store.delete_item, item_id)
        self.feed.forget(item.url)
        self.feed.publish(MESSAGE_REMOVED, {'id': item.id, 'url': item.url})
        logger.info(f"✓ Removed {item.url} (item {item_id})")
        return item

    async def set_watch(self, item_id: int, minutes: int) -> TrackedItem:
        """
        Set the watch interval of an item; 0 stops watching.

        The supervisor picks the change up on its next poll.

        Raises:
            ValueError: Negative interval
            LookupError: Unknown item id
        """
        if minutes < 0:
            raise ValueError("watch interval must not be negative")

        updated = await asyncio.to_thread(self.store.set_watch_interval, item_id, minutes)
        if not updated:
            raise LookupError(f"torrent {item_id} not found")

        logger.info(f"Watch interval of item {item_id} set to {minutes} min")
        return await asyncio.to_thread(self.store.get_item, item_id)

    async def download_paths(self) -> List[str]:
        return await self.client.download_paths()

    async def check_infos(self) -> Dict[str, Dict[str, Any]]:
        """Last check state of every tracked URL; unchecked ones default to success."""
        items = await self.list_tracked_items()
        return self.feed.check_infos(item.url for item in items)

    async def subscribe_feed(self) -> asyncio.Queue:
        """Subscribe to the event feed, starting from the state of every tracked item."""
        items = await self.list_tracked_items()
        return self.feed.subscribe(item.url for item in items)
