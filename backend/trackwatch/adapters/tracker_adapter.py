"""
TrackerAdapter Abstract Base Class for Trackwatch

This module defines the TrackerAdapter abstract base class (ABC) that every
tracker implementation follows. The reconciler works only with this
interface and never with tracker-specific scraping details.

Contract Methods:
    - authenticate(): Log in with the configured credentials
    - fetch_identity(url): Current info-hash (and release name) of a torrent page
    - fetch_title(url): Display title of a torrent page
    - fetch_payload(url): Raw .torrent file for a torrent page

Shared Behavior:
    The base class owns the blocking requests.Session, the relogin lock and
    the bounded fetch-then-relogin loop used by fetch_identity. Concrete
    adapters implement the blocking `_login`, `_attempt_identity`, `_get_title`
    and `_download` hooks; the async contract methods run them in a worker
    thread via asyncio.to_thread.

Usage Example:
    adapter: TrackerAdapter = registry.resolve(url)
    identity = await adapter.fetch_identity(url)
    payload = await adapter.fetch_payload(url)
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, TypeVar
from urllib.parse import urlparse, parse_qs

import requests

from trackwatch.services.exceptions import (
    AuthExpiredError,
    IdentityNotFoundError,
    InvalidCredentialsError,
    NetworkRetryableError,
    NotAPayloadError,
    TrackerAPIError,
    classify_http_error,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_IDENTITY_ATTEMPTS = 10


@dataclass(frozen=True)
class TorrentIdentity:
    """Content hash of a torrent page plus the release name, when known."""
    hash: str
    name: str = ""


def looks_like_html(body: bytes) -> bool:
    """
    Cheap content sniff for HTML error pages served instead of a torrent.

    A bencoded torrent never starts with a document preamble, so only the
    head of the body is inspected.
    """
    head = body[:512].lstrip().lower()
    return head.startswith(b"<!doctype html") or head.startswith(b"<html")


def query_param(url: str, name: str) -> str:
    """
    Extract a required query parameter from a tracker URL.

    Raises:
        TrackerAPIError: If the parameter is missing (permanent, never retried)
    """
    values = parse_qs(urlparse(url).query).get(name)
    if not values or not values[0]:
        raise TrackerAPIError(f"query have no {name} parameter: {url}")
    return values[0]


class TrackerAdapter(ABC):
    """
    Abstract base class defining the contract for tracker adapters.

    Class Attributes:
        name: Registry key of the tracker (e.g., "kinozal")
        hosts: Hostnames served by this tracker; subdomains match too

    Args:
        username: Tracker account name
        password: Tracker account password
        user_agent: User-Agent header sent with every request
        timeout: Per-request timeout in seconds
        max_identity_attempts: Bound of the fetch-then-relogin loop
        session_factory: Callable creating the requests.Session (overridable in tests)
    """

    name: str = ""
    hosts: Tuple[str, ...] = ()

    def __init__(
        self,
        username: str,
        password: str,
        user_agent: str = "",
        timeout: float = 100.0,
        max_identity_attempts: int = DEFAULT_IDENTITY_ATTEMPTS,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.username = username
        self.password = password
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_identity_attempts = max(1, max_identity_attempts)
        self._session_factory = session_factory
        self._session = self._new_session()
        self._login_lock = threading.Lock()
        self._authenticated = False

    # =========================================================================
    # Contract
    # =========================================================================

    async def authenticate(self) -> None:
        """
        Log in with the configured credentials.

        Raises:
            InvalidCredentialsError: If the tracker reports a wrong password
            NetworkRetryableError: On transport failure
        """
        await asyncio.to_thread(self.relogin)

    async def fetch_identity(self, url: str) -> TorrentIdentity:
        """
        Fetch the current info-hash of a torrent page.

        Each attempt that errors, returns an empty hash, or lands on the
        login page drops the session and logs in again. After
        `max_identity_attempts` attempts the lookup gives up.

        Raises:
            IdentityNotFoundError: Bound exhausted ("hash is empty")
            InvalidCredentialsError: A relogin was refused
            TrackerAPIError: The URL cannot be mapped to a details page
        """
        return await asyncio.to_thread(self._fetch_identity_sync, url)

    async def fetch_title(self, url: str) -> str:
        """Fetch the display title of a torrent page."""
        return await asyncio.to_thread(self._with_relogin, self._get_title, url)

    async def fetch_payload(self, url: str) -> bytes:
        """
        Download the .torrent file of a torrent page.

        Raises:
            NotAPayloadError: Tracker returned an HTML page instead
            AuthExpiredError: Still redirected to login after one relogin
        """
        return await asyncio.to_thread(self._with_relogin, self._fetch_payload_sync, url)

    def handles(self, host: str) -> bool:
        """Check whether a hostname belongs to this tracker."""
        return matches_host(host, self.hosts)

    # =========================================================================
    # Tracker-specific hooks (blocking, run in a worker thread)
    # =========================================================================

    @abstractmethod
    def _login(self, session: requests.Session) -> None:
        """
        Perform the credential login on a fresh session.

        Must raise InvalidCredentialsError when the tracker's wrong-password
        marker is present in the response.
        """
        pass

    @abstractmethod
    def _attempt_identity(self, url: str) -> Optional[TorrentIdentity]:
        """
        Perform one identity lookup.

        Returns None or an identity with an empty hash when the page did not
        contain one (usually a stale session).
        """
        pass

    @abstractmethod
    def _get_title(self, url: str) -> str:
        pass

    @abstractmethod
    def _download(self, url: str) -> bytes:
        pass

    def _validate_url(self, url: str) -> None:
        """Reject URLs that can never be resolved, before any network call."""
        pass

    # =========================================================================
    # Session handling
    # =========================================================================

    def _new_session(self) -> requests.Session:
        session = self._session_factory()
        if self.user_agent:
            session.headers.update({"User-Agent": self.user_agent})
        return session

    def relogin(self) -> None:
        """
        Drop the current session and log in on a fresh one.

        Serialized so that concurrent watchers hitting a stale session do
        not start parallel logins.
        """
        with self._login_lock:
            session = self._new_session()
            try:
                self._login(session)
            except requests.exceptions.RequestException as e:
                raise NetworkRetryableError(
                    f"{self.name} login request failed: {type(e).__name__}",
                    original_exception=e,
                )
            self._session = session
            self._authenticated = True
            logger.info(f"✓ Logged in to {self.name} as {self.username}")

    def _relogin_quietly(self, url: str) -> None:
        """Relogin inside a retry loop; only a refused password escapes."""
        try:
            self.relogin()
        except InvalidCredentialsError:
            raise
        except Exception as e:
            logger.error(f"{self.name} relogin failed while fetching {url}: {e}")

    def _ensure_logged_in(self) -> None:
        if not self._authenticated:
            self.relogin()

    def _with_relogin(self, func: Callable[[str], T], url: str) -> T:
        """Run a fetch, re-authenticating exactly once if the session has expired."""
        self._ensure_logged_in()
        try:
            return func(url)
        except AuthExpiredError:
            logger.info(f"{self.name} session expired while fetching {url}, logging in again")
            self.relogin()
        try:
            return func(url)
        except AuthExpiredError as e:
            raise AuthExpiredError(
                f"{self.name} session rejected after re-authentication: {e.message}"
            )

    def _fetch_identity_sync(self, url: str) -> TorrentIdentity:
        self._validate_url(url)
        self._ensure_logged_in()

        identity = None
        for attempt in range(1, self.max_identity_attempts + 1):
            try:
                identity = self._attempt_identity(url)
            except InvalidCredentialsError:
                raise
            except Exception as e:
                logger.warning(
                    f"{self.name} hash lookup attempt {attempt}/{self.max_identity_attempts} "
                    f"failed for {url}: {e}"
                )
                identity = None
                self._relogin_quietly(url)
                continue

            if identity and identity.hash:
                return TorrentIdentity(hash=identity.hash.strip().lower(), name=identity.name)

            logger.info(
                f"{self.name} returned an empty hash for {url} "
                f"(attempt {attempt}/{self.max_identity_attempts}), retrying with a fresh session"
            )
            self._relogin_quietly(url)

        logger.error(f"✗ No hash for {url} after {self.max_identity_attempts} attempts")
        raise IdentityNotFoundError(url=url, attempts=self.max_identity_attempts)

    def _fetch_payload_sync(self, url: str) -> bytes:
        body = self._download(url)
        if not body or looks_like_html(body):
            raise NotAPayloadError(f"{self.name} returned an HTML page instead of a torrent file for {url}")
        return body

    # =========================================================================
    # HTTP helpers
    # =========================================================================

    def _get(self, url: str, login_marker: str, **kwargs) -> requests.Response:
        """
        GET through the authenticated session.

        Raises:
            AuthExpiredError: The tracker redirected to its login page
            NetworkRetryableError: Transport failure or retryable status
            TrackerAPIError: Other non-200 status
        """
        try:
            response = self._session.get(url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise NetworkRetryableError(f"{self.name} request timeout after {self.timeout}s", original_exception=e)
        except requests.exceptions.ConnectionError as e:
            raise NetworkRetryableError(f"Failed to connect to {self.name}", original_exception=e)
        except requests.exceptions.RequestException as e:
            raise NetworkRetryableError(f"{self.name} request failed: {type(e).__name__}", original_exception=e)

        if login_marker and login_marker in (response.url or ""):
            raise AuthExpiredError(f"{self.name} redirected to the login page")

        if response.status_code != 200:
            raise classify_http_error(
                status_code=response.status_code,
                message=f"{self.name} request to {url} failed with HTTP {response.status_code}",
            )
        return response

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(username='{self.username}', hosts={self.hosts})"


def matches_host(host: str, hosts: Tuple[str, ...]) -> bool:
    """True if host equals one of hosts or is a subdomain of one."""
    host = (host or "").lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return any(host == h or host.endswith("." + h) for h in hosts)
