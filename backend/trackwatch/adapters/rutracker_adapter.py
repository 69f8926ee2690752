"""
RuTracker Adapter for Trackwatch

Scrapes rutracker.org topic pages.

Endpoints:
    - Login: POST https://rutracker.org/forum/login.php
    - Hash: magnet link on the topic page, else the info-hash of the
      downloaded .torrent file (computed with torf)
    - Title: h1.maintitle a#topic-title, with fallbacks
    - Torrent file: GET /forum/dl.php?t=<topic id>
"""

import io
import logging
import re
from typing import Optional

import requests
import torf
from bs4 import BeautifulSoup

from trackwatch.services.exceptions import (
    InvalidCredentialsError,
    NotAPayloadError,
    classify_http_error,
)
from .tracker_adapter import TrackerAdapter, TorrentIdentity, query_param

logger = logging.getLogger(__name__)

BASE_URL = "https://rutracker.org"
LOGIN_URL = f"{BASE_URL}/forum/login.php"
PAGE_ENCODING = "windows-1251"

LOGIN_MARKER = "login.php"
UNKNOWN_TITLE = "Unknown RuTracker Torrent"

MAGNET_RE = re.compile(r'href="magnet:\?xt=urn:btih:([a-zA-Z0-9]+)&')
TOPIC_ID_RE = re.compile(r'/forum/viewtopic\.php\?t=(\d+)')


def info_hash(payload: bytes) -> str:
    """
    Compute the lowercase hex info-hash of a .torrent file.

    Raises:
        NotAPayloadError: If the bytes are not a decodable torrent
    """
    try:
        torrent = torf.Torrent.read_stream(io.BytesIO(payload), validate=False)
        return str(torrent.infohash).lower()
    except torf.TorfError as e:
        raise NotAPayloadError(f"cannot decode torrent file: {e}")


def parse_title(content: bytes, url: str) -> str:
    """Extract the topic title, falling back to the topic id."""
    soup = BeautifulSoup(content, "html.parser", from_encoding=PAGE_ENCODING)

    for selector in ("h1.maintitle a#topic-title", "h1.maintitle"):
        node = soup.select_one(selector)
        if node:
            title = node.get_text(strip=True)
            if title:
                return title

    match = TOPIC_ID_RE.search(url)
    if match:
        return f"RuTracker Topic #{match.group(1)}"

    logger.warning(f"⚠ Could not extract a title from {url}")
    return UNKNOWN_TITLE


def has_wrong_password_marker(content: bytes) -> bool:
    soup = BeautifulSoup(content, "html.parser", from_encoding=PAGE_ENCODING)
    return any(
        "неверн" in node.get_text().lower()
        for node in soup.select("h4.warnColor1")
    )


class RutrackerAdapter(TrackerAdapter):
    """Adapter for rutracker.org."""

    name = "rutracker"
    hosts = ("rutracker.org",)

    def _validate_url(self, url: str) -> None:
        query_param(url, "t")

    def _login(self, session: requests.Session) -> None:
        response = session.post(
            LOGIN_URL,
            data={
                "login_username": self.username,
                "login_password": self.password,
                "login": "Login",
            },
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise classify_http_error(
                status_code=response.status_code,
                message=f"rutracker login failed with HTTP {response.status_code}",
            )
        if has_wrong_password_marker(response.content):
            logger.warning(f"⚠ Wrong password for rutracker user {self.username}")
            raise InvalidCredentialsError(f"wrong password for user {self.username} on rutracker.org")

    def _attempt_identity(self, url: str) -> Optional[TorrentIdentity]:
        response = self._get(url, login_marker=LOGIN_MARKER)
        page = response.content.decode(PAGE_ENCODING, errors="replace")

        match = MAGNET_RE.search(page)
        if match:
            logger.debug(f"Found hash in magnet link for {url}")
            return TorrentIdentity(hash=match.group(1).lower())

        logger.info(f"Magnet link not found on {url}, hashing the torrent file instead")
        payload = self._fetch_payload_sync(url)
        return TorrentIdentity(hash=info_hash(payload))

    def _get_title(self, url: str) -> str:
        response = self._get(url, login_marker=LOGIN_MARKER)
        return parse_title(response.content, url)

    def _download(self, url: str) -> bytes:
        topic_id = query_param(url, "t")
        download_url = f"{BASE_URL}/forum/dl.php?t={topic_id}"
        response = self._get(download_url, login_marker=LOGIN_MARKER, headers={"Referer": url})
        logger.info(f"Downloaded rutracker torrent {topic_id} ({len(response.content)} bytes)")
        return response.content
