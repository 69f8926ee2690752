"""
Kinozal Adapter for Trackwatch

Scrapes kinozal.tv torrent pages.

Endpoints:
    - Login: POST https://kinozal.tv/takelogin.php
    - Hash: GET /get_srv_details.php?id=<id>&action=2 ("Инфо хеш: ..." list item)
    - Title: <title> of the torrent page
    - Torrent file: GET https://dl.kinozal.tv/download.php?id=<id>

Pages are served in windows-1251.
"""

import logging
from typing import Optional
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

import requests
from bs4 import BeautifulSoup, NavigableString, Tag

from trackwatch.services.exceptions import (
    InvalidCredentialsError,
    TrackerAPIError,
    classify_http_error,
)
from .tracker_adapter import TrackerAdapter, TorrentIdentity, query_param

logger = logging.getLogger(__name__)

BASE_URL = "https://kinozal.tv"
LOGIN_URL = f"{BASE_URL}/takelogin.php"
DOWNLOAD_BASE_URL = "https://dl.kinozal.tv"
PAGE_ENCODING = "windows-1251"

LOGIN_MARKER = "takelogin.php"
WRONG_PASSWORD_MARKER = "Неверно указан пароль для имени"
HASH_PREFIX = "Инфо хеш: "


def details_url(url: str) -> str:
    """
    Map a torrent page URL to its details endpoint.

    Example:
        https://kinozal.tv/details.php?id=123
        -> https://kinozal.tv/get_srv_details.php?id=123&action=2
    """
    query_param(url, "id")
    parts = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "action"]
    query.append(("action", "2"))
    return urlunparse(parts._replace(path="/get_srv_details.php", query=urlencode(query)))


def parse_details(content: bytes) -> TorrentIdentity:
    """
    Extract the info-hash and release name from a details page.

    Returns an identity with an empty hash when the page holds none, which
    is what kinozal serves to an expired session.
    """
    soup = BeautifulSoup(content, "html.parser", from_encoding=PAGE_ENCODING)
    torrent_hash = ""
    name = ""
    for li in soup.find_all("li"):
        for child in li.children:
            if isinstance(child, Tag):
                if child.name == "div" and "b" in (child.get("class") or []):
                    name = child.get_text(strip=True)
            elif isinstance(child, NavigableString) and HASH_PREFIX in child:
                torrent_hash = child.split(HASH_PREFIX, 1)[1].strip().lower()
    return TorrentIdentity(hash=torrent_hash, name=name)


def has_wrong_password_marker(content: bytes) -> bool:
    soup = BeautifulSoup(content, "html.parser", from_encoding=PAGE_ENCODING)
    return any(
        WRONG_PASSWORD_MARKER in div.get_text()
        for div in soup.find_all("div", class_="red")
    )


class KinozalAdapter(TrackerAdapter):
    """Adapter for kinozal.tv."""

    name = "kinozal"
    hosts = ("kinozal.tv",)

    def _validate_url(self, url: str) -> None:
        query_param(url, "id")

    def _login(self, session: requests.Session) -> None:
        response = session.post(
            LOGIN_URL,
            data={
                "username": self.username,
                "password": self.password,
                "returnto": "",
            },
            headers={"Referer": BASE_URL, "Origin": BASE_URL},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise classify_http_error(
                status_code=response.status_code,
                message=f"kinozal login failed with HTTP {response.status_code}",
            )
        if has_wrong_password_marker(response.content):
            logger.warning(f"⚠ Wrong password for kinozal user {self.username}")
            raise InvalidCredentialsError(f"wrong password for user {self.username} on kinozal.tv")

    def _attempt_identity(self, url: str) -> Optional[TorrentIdentity]:
        response = self._get(details_url(url), login_marker=LOGIN_MARKER)
        return parse_details(response.content)

    def _get_title(self, url: str) -> str:
        response = self._get(url, login_marker=LOGIN_MARKER)
        soup = BeautifulSoup(response.content, "html.parser", from_encoding=PAGE_ENCODING)
        if soup.title and soup.title.string and soup.title.string.strip():
            return soup.title.string.strip()
        raise TrackerAPIError(f"kinozal page has no title: {url}")

    def _download(self, url: str) -> bytes:
        torrent_id = query_param(url, "id")
        download_url = f"{DOWNLOAD_BASE_URL}/download.php?id={torrent_id}"
        logger.debug(f"Downloading kinozal torrent {torrent_id} from {download_url}")
        response = self._get(download_url, login_marker=LOGIN_MARKER, headers={"Referer": url})
        logger.info(f"Downloaded kinozal torrent {torrent_id} ({len(response.content)} bytes)")
        return response.content
