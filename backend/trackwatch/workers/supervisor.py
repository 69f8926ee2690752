"""
Supervisor

Background worker that keeps the watch registry in line with the store.

Every poll it reads all tracked items and:
- starts a watcher for each watched item without one
- replaces a watcher whose interval changed
- cancels watchers of unwatched or deleted items

A store read failure halts the supervisor; existing watchers keep running.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from trackwatch.models.tracked_item import TrackedItem
from .watch_registry import WatchRegistry

logger = logging.getLogger(__name__)


class Supervisor:
    """
    Polls the store and diffs it against the watch registry.

    Args:
        store: TrackedItemStore
        registry: WatchRegistry to drive
        poll_interval: Seconds between store polls
    """

    def __init__(self, store, registry: WatchRegistry, poll_interval: float = 5.0):
        self.store = store
        self.registry = registry
        self.poll_interval = poll_interval
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.halted = False
        self.last_error: Optional[str] = None
        self.last_sync: Optional[datetime] = None

    async def start(self) -> None:
        """Start the supervisor loop."""
        if self._running:
            logger.warning("Supervisor already running")
            return

        self._running = True
        self.halted = False
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="supervisor")
        logger.info(f"Supervisor started (poll_interval={self.poll_interval}s)")

    async def stop(self) -> None:
        """Stop the loop. Watchers are left to the caller."""
        if self._task is None:
            return

        logger.info("Stopping supervisor...")
        self._stop_event.set()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self._running = False
        logger.info("Supervisor stopped")

    async def sync(self, items: Iterable[TrackedItem]) -> None:
        """Apply one diff between the given items and the registry."""
        present = set()
        for item in items:
            present.add(item.id)
            watcher = self.registry.get(item.id)

            if item.watch_every <= 0:
                if watcher is not None:
                    self.registry.cancel(item.id)
                continue

            if watcher is None:
                self.registry.create(item.id, item.watch_every)
            elif watcher.interval_minutes != item.watch_every:
                await self.registry.replace(item.id, item.watch_every)

        for item_id in self.registry.ids():
            if item_id not in present:
                logger.info(f"Item {item_id} no longer tracked")
                self.registry.cancel(item_id)

        self.last_sync = datetime.now(timezone.utc)

    async def _loop(self) -> None:
        logger.info("Supervisor loop started")

        while not self._stop_event.is_set():
            try:
                items = await asyncio.to_thread(self.store.list_items)
            except Exception as e:
                logger.critical(f"✗ Cannot read tracked items, supervisor halted: {e}")
                self.halted = True
                self.last_error = str(e)
                break

            try:
                await self.sync(items)
            except Exception as e:
                logger.error(f"Error while syncing watchers: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> dict:
        """Get supervisor status."""
        return {
            "running": self._running,
            "halted": self.halted,
            "last_error": self.last_error,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "poll_interval": self.poll_interval,
            "watchers": len(self.registry),
        }
