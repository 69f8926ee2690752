"""
TrackerRegistry for Trackwatch

Maps tracker page URLs to the adapter that serves their host and exposes
the adapter contract keyed by URL, so callers never pick an adapter
themselves.

Architecture:
    TrackerRegistry
        ├── KinozalAdapter   (kinozal.tv)
        └── RutrackerAdapter (rutracker.org)

Usage:
    registry = TrackerRegistry.from_config(config)
    await registry.authenticate_all()

    identity = await registry.fetch_identity("https://kinozal.tv/details.php?id=1")
"""

import logging
from typing import Dict, List, Optional, Type
from urllib.parse import urlparse

from trackwatch.services.exceptions import InvalidCredentialsError, UnknownTrackerError
from .kinozal_adapter import KinozalAdapter
from .rutracker_adapter import RutrackerAdapter
from .tracker_adapter import TrackerAdapter, TorrentIdentity, matches_host

logger = logging.getLogger(__name__)


class TrackerRegistry:
    """
    Registry of configured tracker adapters.

    Adapter Classes:
        - "kinozal": KinozalAdapter
        - "rutracker": RutrackerAdapter

    A host that belongs to a known adapter class but has no configured
    instance (no credentials) is treated as unknown.
    """

    _REGISTRY: Dict[str, Type[TrackerAdapter]] = {
        KinozalAdapter.name: KinozalAdapter,
        RutrackerAdapter.name: RutrackerAdapter,
    }

    def __init__(self, adapters: Optional[List[TrackerAdapter]] = None):
        self._adapters: Dict[str, TrackerAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    @classmethod
    def from_config(cls, config) -> 'TrackerRegistry':
        """
        Build a registry with one adapter per tracker that has credentials.

        Args:
            config: Config class or instance
        """
        credentials = {
            "kinozal": (config.KZ_USERNAME, config.KZ_PASSWORD),
            "rutracker": (config.RT_USERNAME, config.RT_PASSWORD),
        }
        registry = cls()
        for name, (username, password) in credentials.items():
            if not username or not password:
                logger.info(f"No credentials for {name}, tracker disabled")
                continue
            registry.register(cls._REGISTRY[name](
                username=username,
                password=password,
                user_agent=config.USER_AGENT,
                timeout=config.TRACKER_REQUEST_TIMEOUT,
                max_identity_attempts=config.IDENTITY_FETCH_ATTEMPTS,
            ))
        return registry

    def register(self, adapter: TrackerAdapter) -> None:
        self._adapters[adapter.name] = adapter
        logger.debug(f"Tracker {adapter.name} registered for hosts {adapter.hosts}")

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def available(self) -> List[str]:
        """Names of the configured trackers."""
        return sorted(self._adapters)

    def resolve(self, url: str) -> TrackerAdapter:
        """
        Find the adapter serving a URL.

        Raises:
            UnknownTrackerError: No configured adapter handles the URL's host
        """
        host = urlparse(url or "").hostname or ""
        if host:
            for adapter in self._adapters.values():
                if adapter.handles(host):
                    return adapter
            for adapter_class in self._REGISTRY.values():
                if matches_host(host, adapter_class.hosts):
                    logger.warning(f"⚠ Tracker {adapter_class.name} is known but not configured: {url}")
                    break
        raise UnknownTrackerError(url)

    async def authenticate_all(self) -> None:
        """
        Log in to every configured tracker.

        A tracker that refuses its credentials is dropped from the registry;
        other login failures are logged and retried lazily on first use.
        """
        for name, adapter in list(self._adapters.items()):
            try:
                await adapter.authenticate()
            except InvalidCredentialsError as e:
                logger.error(f"✗ {name}: {e.message}, tracker disabled")
                self.unregister(name)
            except Exception as e:
                logger.warning(f"⚠ {name}: initial login failed ({e}), will retry on first use")

    # =========================================================================
    # URL-keyed contract
    # =========================================================================

    async def fetch_identity(self, url: str) -> TorrentIdentity:
        return await self.resolve(url).fetch_identity(url)

    async def fetch_title(self, url: str) -> str:
        return await self.resolve(url).fetch_title(url)

    async def fetch_payload(self, url: str) -> bytes:
        return await self.resolve(url).fetch_payload(url)

    def __repr__(self) -> str:
        return f"TrackerRegistry(trackers={self.available()})"
