"""
QBittorrent Client Service for Trackwatch

Dedicated module for all qBittorrent Web API interactions.

Features:
    - Persistent authenticated session (SID cookie kept in one httpx.AsyncClient)
    - Lazy, single-flight session validation before every call
    - One re-authentication per call on HTTP 403, then AuthExpiredError
    - Torrent listing, injection (file or magnet), removal and save path lookup

API Reference: https://github.com/qbittorrent/qBittorrent/wiki/WebUI-API-(qBittorrent-4.1)
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

import httpx

from .exceptions import (
    AuthExpiredError,
    DownloadClientError,
    EntryNotFoundError,
    InvalidCredentialsError,
    NetworkRetryableError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadClientEntry:
    """Read-only projection of one torrent known to qBittorrent."""
    hash: str
    name: str
    save_path: str


class QBittorrentClient:
    """
    Client for qBittorrent Web API.

    Authentication state is shared by every watcher. It is guarded by one
    asyncio.Lock and a generation counter that is bumped on each successful
    login, so concurrent 403s lead to a single login.

    Args:
        host: qBittorrent Web UI address (host:port or full URL)
        username: Web UI username
        password: Web UI password
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        host: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Ensure host has protocol
        if host and not host.startswith('http'):
            host = f"http://{host}"
        self.host = (host or '').rstrip('/')
        self.username = username or ''
        self.password = password or ''
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._lock = asyncio.Lock()
        self._logged_in = False
        self._generation = 0

    @property
    def generation(self) -> int:
        """Number of successful logins so far."""
        return self._generation

    # =========================================================================
    # Session
    # =========================================================================

    async def login(self) -> None:
        """
        Log in and store the session cookie.

        Raises:
            InvalidCredentialsError: qBittorrent did not answer "Ok."
            NetworkRetryableError: On connection errors
        """
        async with self._lock:
            await self._login_locked()

    async def ensure_valid(self) -> None:
        """
        Make sure the session is usable, logging in if needed.

        Concurrent callers share one validation: whoever waited on the lock
        while another caller logged in returns without probing again.
        """
        seen = self._generation
        async with self._lock:
            if self._logged_in and self._generation != seen:
                return
            if not self._logged_in:
                await self._login_locked()
                return
            response = await self._send("GET", "/api/v2/app/version")
            if response.status_code != 200:
                logger.info(f"qBittorrent session probe returned HTTP {response.status_code}, logging in again")
                await self._login_locked()

    async def recover(self) -> None:
        """Drop the session cookie and log in again. Failures are only logged."""
        async with self._lock:
            self._client.cookies.clear()
            self._logged_in = False
            try:
                await self._login_locked()
            except Exception as e:
                logger.error(f"✗ qBittorrent re-login failed: {e}")

    async def _login_locked(self) -> None:
        logger.debug(f"Authenticating with qBittorrent at {self.host}")
        response = await self._send(
            "POST",
            "/api/v2/auth/login",
            data={"username": self.username, "password": self.password},
        )
        if response.text != "Ok.":
            self._logged_in = False
            raise InvalidCredentialsError(
                f"qBittorrent authentication failed: {response.text or response.status_code}",
                status_code=response.status_code,
            )
        self._logged_in = True
        self._generation += 1
        logger.info(f"✓ Authenticated with qBittorrent (session #{self._generation})")

    async def _reauthenticate(self, seen_generation: int) -> None:
        async with self._lock:
            if self._generation != seen_generation:
                logger.debug("qBittorrent session already renewed by another caller")
                return
            await self._login_locked()

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, f"{self.host}{path}", **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkRetryableError(f"qBittorrent request timeout: {path}", original_exception=e)
        except httpx.HTTPError as e:
            raise NetworkRetryableError(f"qBittorrent connection error: {e}", original_exception=e)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send an authenticated request.

        Raises:
            AuthExpiredError: Still forbidden after one re-authentication
            DownloadClientError: Any other non-2xx response
            NetworkRetryableError: On connection errors
        """
        await self.ensure_valid()
        generation = self._generation

        response = await self._send(method, path, **kwargs)
        if response.status_code == 403:
            logger.info(f"qBittorrent returned 403 for {path}, re-authenticating")
            await self._reauthenticate(generation)
            response = await self._send(method, path, **kwargs)
            if response.status_code == 403:
                raise AuthExpiredError(
                    f"qBittorrent rejected {path} after re-authentication",
                    status_code=403,
                )

        if not response.is_success:
            raise DownloadClientError(
                f"qBittorrent {method} {path} failed: {response.text}",
                status_code=response.status_code,
            )
        return response

    # =========================================================================
    # Torrents
    # =========================================================================

    async def list_entries(self) -> List[DownloadClientEntry]:
        """List every torrent known to qBittorrent."""
        response = await self._request("GET", "/api/v2/torrents/info", params={"filter": "all"})
        return [self._entry(raw) for raw in response.json()]

    async def add_payload(self, torrent_hash: str, save_path: str, payload: bytes) -> None:
        """
        Add a torrent from its .torrent file.

        qBittorrent answers "Fails." when the torrent is already present;
        that is treated as success.
        """
        response = await self._request(
            "POST",
            "/api/v2/torrents/add",
            files={"torrents": (f"{torrent_hash}.torrent", payload, "application/x-bittorrent")},
            data={"savepath": save_path, "autoTMM": "false"},
        )
        self._check_add_reply(response, torrent_hash)
        logger.info(f"Torrent {torrent_hash} added to qBittorrent (save_path={save_path})")

    async def add_by_identity(self, torrent_hash: str, save_path: str) -> None:
        """Add a torrent by magnet link built from its info-hash."""
        response = await self._request(
            "POST",
            "/api/v2/torrents/add",
            data={
                "urls": f"magnet:?xt=urn:btih:{torrent_hash}",
                "savepath": save_path,
                "autoTMM": "false",
            },
        )
        self._check_add_reply(response, torrent_hash)
        logger.info(f"Magnet {torrent_hash} added to qBittorrent (save_path={save_path})")

    async def remove(self, torrent_hash: str, delete_files: bool = False) -> None:
        await self._request(
            "POST",
            "/api/v2/torrents/delete",
            data={"hashes": torrent_hash, "deleteFiles": "true" if delete_files else "false"},
        )
        logger.info(f"Torrent {torrent_hash} removed from qBittorrent (delete_files={delete_files})")

    async def save_path_of(self, torrent_hash: str) -> str:
        """
        Return the save path of a torrent.

        Raises:
            EntryNotFoundError: Hash unknown to qBittorrent or its save path is empty
        """
        response = await self._request("GET", "/api/v2/torrents/info", params={"hashes": torrent_hash})
        for raw in response.json():
            entry = self._entry(raw)
            if entry.hash == torrent_hash.lower() and entry.save_path:
                return entry.save_path
        raise EntryNotFoundError(torrent_hash)

    async def download_paths(self) -> List[str]:
        """Distinct save paths of all torrents, most frequently used first."""
        counts = Counter(entry.save_path for entry in await self.list_entries() if entry.save_path)
        return [path for path, _ in counts.most_common()]

    async def test_connection(self) -> Dict[str, Any]:
        """
        Test connectivity to qBittorrent.

        Returns:
            Dict with 'success', 'message', and optionally 'version'
        """
        if not self.host:
            return {'success': False, 'message': 'qBittorrent host not configured'}

        try:
            response = await self._request("GET", "/api/v2/app/version")
            version = response.text
            return {
                'success': True,
                'message': f'Connected to qBittorrent {version}',
                'version': version,
            }
        except InvalidCredentialsError as e:
            return {'success': False, 'message': e.message}
        except NetworkRetryableError as e:
            return {'success': False, 'message': f'Connection failed: {e.message}'}
        except Exception as e:
            return {'success': False, 'message': f'Error: {e}'}

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _entry(raw: Dict[str, Any]) -> DownloadClientEntry:
        return DownloadClientEntry(
            hash=(raw.get("hash") or "").lower(),
            name=raw.get("name") or "",
            save_path=raw.get("save_path") or "",
        )

    @staticmethod
    def _check_add_reply(response: httpx.Response, torrent_hash: str) -> None:
        text = response.text.strip()
        if text == "Ok.":
            return
        if text.lower() == "fails." or "already" in text.lower():
            logger.warning(f"Torrent {torrent_hash} already exists in qBittorrent: {text}")
            return
        raise DownloadClientError(f"Failed to add torrent {torrent_hash}: {text}")
