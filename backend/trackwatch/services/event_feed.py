"""
Event Feed Service

In-memory snapshot-plus-delta feed consumed by the WebSocket route.

Features:
- Last check time and outcome per tracked URL
- Per-subscriber asyncio queues, bounded so a stalled client cannot grow memory
- New subscribers first receive the current state, then every delta

Message format:
    {"type": "current_state", "data": {url: {"last_check_time": ..., "last_check_success": ...}}}
    {"type": "check" | "added" | "updated" | "removed", "data": {...}}
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)

MESSAGE_CURRENT_STATE = "current_state"
MESSAGE_CHECK = "check"
MESSAGE_ADDED = "added"
MESSAGE_UPDATED = "updated"
MESSAGE_REMOVED = "removed"


@dataclass(frozen=True)
class CheckInfo:
    """Outcome of the last reconciliation of one URL."""
    last_check_time: datetime
    last_check_success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_check_time": self.last_check_time.isoformat(timespec="seconds"),
            "last_check_success": self.last_check_success,
        }


class EventFeed:
    """
    Fan-out of engine events to live subscribers.

    Only touched from the event loop, so no locking is needed.

    Args:
        max_queue_size: Pending messages kept per subscriber; the oldest is
            dropped when a subscriber falls behind
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._checks: Dict[str, CheckInfo] = {}
        self._subscribers: Set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # =========================================================================
    # Check state
    # =========================================================================

    def record_check(self, url: str, success: bool, when: Optional[datetime] = None) -> CheckInfo:
        """Record a reconciliation outcome and broadcast it."""
        info = CheckInfo(
            last_check_time=when or datetime.now(timezone.utc),
            last_check_success=success,
        )
        self._checks[url] = info
        self.publish(MESSAGE_CHECK, {url: info.to_dict()})
        return info

    def check_infos(self, urls: Optional[Iterable[str]] = None) -> Dict[str, Dict[str, Any]]:
        """
        Current check state of every checked URL, or of exactly the given URLs.

        A given URL that was never checked is reported as a successful check
        made now, the state a freshly tracked item starts in.
        """
        if urls is None:
            return {url: info.to_dict() for url, info in self._checks.items()}
        now = datetime.now(timezone.utc)
        return {
            url: self._checks.get(url, CheckInfo(now, True)).to_dict()
            for url in urls
        }

    def forget(self, url: str) -> None:
        self._checks.pop(url, None)

    # =========================================================================
    # Subscribers
    # =========================================================================

    def subscribe(self, urls: Optional[Iterable[str]] = None) -> asyncio.Queue:
        """
        Register a subscriber; its queue starts with the current state.

        Args:
            urls: Tracked URLs to include in the first message (see check_infos)
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        queue.put_nowait({"type": MESSAGE_CURRENT_STATE, "data": self.check_infos(urls)})
        self._subscribers.add(queue)
        logger.debug(f"Feed subscriber added ({len(self._subscribers)} active)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        logger.debug(f"Feed subscriber removed ({len(self._subscribers)} active)")

    def publish(self, message_type: str, data: Any) -> None:
        """Queue a delta for every subscriber."""
        message = {"type": message_type, "data": data}
        for queue in list(self._subscribers):
            if queue.full():
                dropped = queue.get_nowait()
                logger.warning(f"⚠ Feed subscriber is lagging, dropped a '{dropped['type']}' message")
            queue.put_nowait(message)
