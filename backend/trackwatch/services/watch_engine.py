"""
Watch Engine

Composition root: builds the engine components and wires them together.
One instance lives on the FastAPI application state.

Usage:
    engine = WatchEngine.from_config(Config, SessionLocal)
    await engine.start()
    ...
    await engine.stop()
"""

import asyncio
import logging
from typing import Optional

from trackwatch.adapters.tracker_registry import TrackerRegistry
from trackwatch.workers.supervisor import Supervisor
from trackwatch.workers.watch_registry import WatchRegistry
from .event_feed import EventFeed
from .ingest_service import IngestService
from .notification_service import NotificationService
from .qbittorrent_client import QBittorrentClient
from .reconciler import Reconciler, DEFAULT_SAVE_PATH
from .store import TrackedItemStore
from .watch_service import WatchService

logger = logging.getLogger(__name__)


class WatchEngine:
    """
    Owns the store, tracker registry, download client session, notifier,
    event feed, watchers and supervisor.

    Args:
        store: TrackedItemStore
        trackers: TrackerRegistry
        client: QBittorrentClient
        notifier: NotificationService
        feed: EventFeed (a new one when omitted)
        poll_interval: Supervisor poll interval in seconds
        default_save_path: Last-resort save path
        interval_unit: Seconds per watch interval unit
    """

    def __init__(
        self,
        store,
        trackers,
        client,
        notifier,
        feed: Optional[EventFeed] = None,
        poll_interval: float = 5.0,
        default_save_path: str = DEFAULT_SAVE_PATH,
        interval_unit: float = 60.0,
    ):
        self.store = store
        self.trackers = trackers
        self.client = client
        self.notifier = notifier
        self.feed = feed or EventFeed()

        self.reconciler = Reconciler(
            trackers=trackers,
            client=client,
            store=store,
            notifier=notifier,
            feed=self.feed,
            default_save_path=default_save_path,
        )
        self.ingest = IngestService(
            trackers=trackers,
            client=client,
            store=store,
            reconciler=self.reconciler,
            default_save_path=default_save_path,
        )
        self.service = WatchService(store=store, client=client, ingest=self.ingest, feed=self.feed)
        self.watchers = WatchRegistry(self._tick, interval_unit=interval_unit)
        self.supervisor = Supervisor(store, self.watchers, poll_interval=poll_interval)

    @classmethod
    def from_config(cls, config, session_factory) -> 'WatchEngine':
        """Build an engine from configuration and a SQLAlchemy session factory."""
        return cls(
            store=TrackedItemStore(session_factory),
            trackers=TrackerRegistry.from_config(config),
            client=QBittorrentClient(
                host=config.QB_URL,
                username=config.QB_USERNAME,
                password=config.QB_PASSWORD,
                timeout=config.QBITTORRENT_TIMEOUT,
            ),
            notifier=NotificationService.from_config(config),
            poll_interval=config.SUPERVISOR_POLL_INTERVAL,
            default_save_path=config.DEFAULT_SAVE_PATH,
        )

    async def _tick(self, item_id: int) -> None:
        item = await asyncio.to_thread(self.store.get_item, item_id)
        if item is None:
            logger.debug(f"Item {item_id} disappeared before its tick")
            return
        await self.reconciler.reconcile(item)

    async def start(self) -> None:
        """Log in everywhere and start the supervisor."""
        await self.trackers.authenticate_all()
        try:
            await self.client.ensure_valid()
            logger.info("✓ qBittorrent session established")
        except Exception as e:
            logger.warning(f"⚠ qBittorrent not reachable at startup: {e}")
        await self.supervisor.start()

    async def stop(self) -> None:
        """Stop the supervisor, wait for every watcher, close the client session."""
        await self.supervisor.stop()
        await self.watchers.stop_all()
        await self.client.aclose()
        logger.info("Watch engine stopped")

    def get_status(self) -> dict:
        return {
            "supervisor": self.supervisor.get_status(),
            "watchers": self.watchers.get_status(),
            "trackers": self.trackers.available(),
            "notifications_enabled": self.notifier.enabled,
            "feed_subscribers": self.feed.subscriber_count,
        }
