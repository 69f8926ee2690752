"""
Watch Registry

Per-item periodic watchers.

Features:
- At most one watcher per tracked item id
- Immediate first tick, then one tick per interval
- Cooperative cancellation through an asyncio.Event; a tick in flight finishes
- Interval change replaces the watcher once the old one has fully stopped
- Every tick's logs carry the item id
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from trackwatch.services.structured_logging import CorrelationContext

logger = logging.getLogger(__name__)

TickFunc = Callable[[int], Awaitable[Any]]


@dataclass
class Watcher:
    """A running watcher for one tracked item."""
    item_id: int
    interval_minutes: int
    stop_event: asyncio.Event
    task: Optional[asyncio.Task] = None

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()


class WatchRegistry:
    """
    Set of active watchers keyed by item id.

    Only the supervisor mutates the registry.

    Args:
        tick: Coroutine function run on every tick with the item id
        interval_unit: Seconds per interval unit (60: intervals are minutes)
    """

    def __init__(self, tick: TickFunc, interval_unit: float = 60.0):
        self._tick = tick
        self.interval_unit = interval_unit
        self._watchers: Dict[int, Watcher] = {}
        self._stopping: Set[asyncio.Task] = set()

    def __contains__(self, item_id: int) -> bool:
        return item_id in self._watchers

    def __len__(self) -> int:
        return len(self._watchers)

    def get(self, item_id: int) -> Optional[Watcher]:
        return self._watchers.get(item_id)

    def ids(self) -> List[int]:
        return list(self._watchers)

    def intervals(self) -> Dict[int, int]:
        return {item_id: w.interval_minutes for item_id, w in self._watchers.items()}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create(self, item_id: int, interval_minutes: int) -> Watcher:
        """
        Start a watcher. It ticks immediately.

        Raises:
            ValueError: Interval not positive, or a watcher already exists
        """
        if interval_minutes <= 0:
            raise ValueError(f"watch interval must be positive, got {interval_minutes}")
        if item_id in self._watchers:
            raise ValueError(f"item {item_id} is already watched")

        watcher = Watcher(item_id=item_id, interval_minutes=interval_minutes, stop_event=asyncio.Event())
        watcher.task = asyncio.create_task(self._run(watcher), name=f"watcher-{item_id}")
        self._watchers[item_id] = watcher
        logger.info(f"Watcher for item {item_id} started (every {interval_minutes} min)")
        return watcher

    def cancel(self, item_id: int) -> bool:
        """
        Signal a watcher to stop without waiting for it.

        Returns:
            True if a watcher existed
        """
        watcher = self._watchers.pop(item_id, None)
        if watcher is None:
            return False

        watcher.stop_event.set()
        if watcher.task and not watcher.task.done():
            self._stopping.add(watcher.task)
            watcher.task.add_done_callback(self._stopping.discard)
        logger.info(f"Watcher for item {item_id} cancelled")
        return True

    async def replace(self, item_id: int, interval_minutes: int) -> Watcher:
        """Stop the current watcher (including a tick in flight) and start a new one."""
        old = self._watchers.get(item_id)
        self.cancel(item_id)
        if old and old.task:
            await asyncio.gather(old.task, return_exceptions=True)
            logger.info(
                f"Watcher for item {item_id} interval changed: "
                f"{old.interval_minutes} -> {interval_minutes} min"
            )
        return self.create(item_id, interval_minutes)

    async def stop_all(self) -> None:
        """Signal every watcher and wait for all of them to exit."""
        for item_id in list(self._watchers):
            self.cancel(item_id)
        pending = list(self._stopping)
        if pending:
            logger.info(f"Waiting for {len(pending)} watcher(s) to stop...")
            await asyncio.gather(*pending, return_exceptions=True)
        self._stopping.clear()

    # =========================================================================
    # Worker
    # =========================================================================

    async def _run(self, watcher: Watcher) -> None:
        interval = watcher.interval_minutes * self.interval_unit
        with CorrelationContext(item_id=watcher.item_id):
            while not watcher.stop_event.is_set():
                try:
                    await self._tick(watcher.item_id)
                except Exception as e:
                    logger.error(f"✗ Tick for item {watcher.item_id} failed: {e}")

                try:
                    await asyncio.wait_for(watcher.stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    continue
            logger.debug(f"Watcher for item {watcher.item_id} exited")

    def get_status(self) -> dict:
        return {
            "watchers": len(self._watchers),
            "stopping": len(self._stopping),
            "intervals": self.intervals(),
        }
