"""
Reconciler Service

Brings the download client in line with the tracker for one tracked item.

Each call decides between three transitions:
    - Add: the item's hash is not in the download client; push the current
      tracker torrent and record it.
    - Replace: the tracker now serves a different hash; remove the old torrent
      (keeping its files), record the new hash and push the new torrent into
      the same save path.
    - No-op: the tracker hash equals the recorded one.

Store calls are blocking SQLAlchemy work and run in a worker thread.
"""

import asyncio
import logging
from typing import Optional, Tuple

from trackwatch.adapters.tracker_adapter import TorrentIdentity
from trackwatch.models.tracked_item import TrackedItem
from .event_feed import EventFeed, MESSAGE_ADDED, MESSAGE_UPDATED
from .exceptions import AuthExpiredError
from .notification_service import EVENT_ADDED, EVENT_UPDATED

logger = logging.getLogger(__name__)

DEFAULT_SAVE_PATH = "/downloads"


class Reconciler:
    """
    Add / replace / no-op transition for tracked items.

    Args:
        trackers: TrackerRegistry (resolve, fetch_identity, fetch_title, fetch_payload)
        client: QBittorrentClient
        store: TrackedItemStore
        notifier: NotificationService
        feed: EventFeed receiving check results and change events
        default_save_path: Last-resort save path
    """

    def __init__(
        self,
        trackers,
        client,
        store,
        notifier,
        feed: EventFeed,
        default_save_path: str = DEFAULT_SAVE_PATH,
    ):
        self.trackers = trackers
        self.client = client
        self.store = store
        self.notifier = notifier
        self.feed = feed
        self.default_save_path = default_save_path or DEFAULT_SAVE_PATH

    async def reconcile(self, item: TrackedItem) -> TrackedItem:
        """
        Run one reconciliation tick.

        Never raises: every failure is logged and ends the tick. The outcome
        is recorded in the event feed, unless the item was removed meanwhile.

        Returns:
            The item as stored after the tick (unchanged on no-op or failure)
        """
        try:
            result, success = await self._reconcile(item)
        except LookupError as e:
            # Removed while the tick was running; leave no trace of it
            logger.info(f"Item {item.id} was removed during its check: {e}")
            return item
        except Exception as e:
            logger.error(f"✗ Reconciliation of {item.url} failed: {e}")
            result, success = item, False

        self.feed.record_check(item.url, success)
        return result

    async def _reconcile(self, item: TrackedItem) -> Tuple[TrackedItem, bool]:
        try:
            entries = await self.client.list_entries()
        except AuthExpiredError as e:
            logger.warning(f"⚠ Download client session rejected ({e.message}), logging in again")
            await self.client.recover()
            return item, False

        known_hashes = {entry.hash for entry in entries}
        if not item.hash or item.hash not in known_hashes:
            logger.info(f"Torrent {item.hash or '<none>'} missing from download client, adding {item.url}")
            stored = await self.add(item, item.save_path or self.default_save_path)
            return stored, True

        identity = await self.trackers.fetch_identity(item.url)
        if identity.hash == item.hash:
            logger.debug(f"No change for {item.url} ({item.hash})")
            return item, True

        logger.info(f"Hash changed for {item.url}: {item.hash} -> {identity.hash}")
        return await self.replace(item, identity), True

    # =========================================================================
    # Transitions
    # =========================================================================

    async def add(
        self,
        item: TrackedItem,
        save_path: str,
        identity: Optional[TorrentIdentity] = None,
    ) -> TrackedItem:
        """
        Add path: push the tracker's current torrent and record it.

        Raises:
            UnknownTrackerError: No tracker handles the item URL
            TrackwatchError: Tracker or download client failure
            LookupError: The stored item was deleted meanwhile
        """
        self.trackers.resolve(item.url)
        if identity is None:
            identity = await self.trackers.fetch_identity(item.url)

        title = await self._fetch_title(item, identity.hash)
        updated = item.evolve(
            hash=identity.hash,
            name=identity.name or item.name,
            title=title,
            save_path=save_path,
        )

        await self._ensure_tracked(item)
        await self._push(updated)
        stored = await asyncio.to_thread(self.store.upsert_item, updated)
        logger.info(f"✓ Added {stored.title} ({stored.hash}) to {stored.save_path}")

        await self._notify(EVENT_ADDED, stored)
        self.feed.publish(MESSAGE_ADDED, stored.to_dict())
        return stored

    async def replace(self, item: TrackedItem, identity: TorrentIdentity) -> TrackedItem:
        """
        Replace path: swap the old torrent for the new one in the same save path.

        The old torrent's files are kept. A failed removal ends the transition
        before anything is written to the store.
        """
        old_hash = item.hash
        await self._ensure_tracked(item)
        try:
            save_path = await self.client.save_path_of(old_hash)
        except Exception as e:
            save_path = item.save_path or self.default_save_path
            logger.warning(f"⚠ Could not read save path of {old_hash} ({e}), using {save_path}")

        await self.client.remove(old_hash, delete_files=False)

        title = await self._fetch_title(item, identity.hash)
        updated = item.evolve(
            hash=identity.hash,
            name=identity.name or item.name,
            title=title,
            save_path=save_path,
        )
        stored = await asyncio.to_thread(self.store.upsert_item, updated)

        await self._push(stored)
        logger.info(f"✓ Replaced {old_hash} with {stored.hash} for {stored.url}")

        await self._notify(EVENT_UPDATED, stored)
        self.feed.publish(MESSAGE_UPDATED, {**stored.to_dict(), "old_hash": old_hash})
        return stored

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _ensure_tracked(self, item: TrackedItem) -> None:
        """Raise LookupError if a stored item was deleted since it was read."""
        if item.id is None:
            return
        if await asyncio.to_thread(self.store.get_item, item.id) is None:
            raise LookupError(f"tracked torrent {item.id} no longer exists")

    async def _push(self, item: TrackedItem) -> None:
        """Send the torrent to the client, by file if possible, else by magnet."""
        try:
            payload = await self.trackers.fetch_payload(item.url)
        except Exception as e:
            logger.warning(f"⚠ Torrent file unavailable for {item.url} ({e}), adding by magnet link")
            await self.client.add_by_identity(item.hash, item.save_path)
            return
        await self.client.add_payload(item.hash, item.save_path, payload)

    async def _fetch_title(self, item: TrackedItem, fallback: str) -> str:
        try:
            return await self.trackers.fetch_title(item.url)
        except Exception as e:
            title = item.title or fallback
            logger.warning(f"⚠ Could not fetch title of {item.url} ({e}), keeping '{title}'")
            return title

    async def _notify(self, kind: str, item: TrackedItem) -> None:
        try:
            await self.notifier.notify(kind, item)
        except Exception as e:
            logger.error(f"✗ Failed to send '{kind}' notification for {item.url}: {e}")
