"""
Unit tests for QBittorrentClient

The Web API is simulated with httpx.MockTransport. Tests cover:
    - Login and refused credentials
    - Lazy, single-flight session validation
    - One re-authentication per call on HTTP 403
    - Listing, injection, removal and save path lookup
"""

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from trackwatch.services.exceptions import (
    AuthExpiredError,
    DownloadClientError,
    EntryNotFoundError,
    InvalidCredentialsError,
    NetworkRetryableError,
)
from trackwatch.services.qbittorrent_client import DownloadClientEntry, QBittorrentClient

HOST = "http://qbittorrent.test:8080"

TORRENTS = [
    {"hash": "AAAA", "name": "First", "save_path": "/data/tv"},
    {"hash": "bbbb", "name": "Second", "save_path": "/data/movies"},
    {"hash": "cccc", "name": "Third", "save_path": "/data/tv"},
]


class FakeQBittorrent:
    """Minimal qBittorrent Web API backed by a list of torrents."""

    def __init__(self, password="adminadmin", torrents=None):
        self.password = password
        self.torrents = list(torrents if torrents is not None else TORRENTS)
        self.requests = []
        self.logins = 0
        self.sid = None
        self.always_forbid = False
        self.add_reply = "Ok."
        self.forbid_once = set()
        self.fail_paths = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/v2/auth/login":
            form = parse_qs(request.content.decode())
            if form.get("password") != [self.password]:
                return httpx.Response(200, text="Fails.")
            self.logins += 1
            self.sid = f"sid-{self.logins}"
            return httpx.Response(200, text="Ok.", headers={"set-cookie": f"SID={self.sid}; path=/"})

        if self.always_forbid or path in self.forbid_once:
            self.forbid_once.discard(path)
            return httpx.Response(403, text="Forbidden")
        if request.headers.get("cookie") != f"SID={self.sid}":
            return httpx.Response(403, text="Forbidden")

        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], text="boom")
        if path == "/api/v2/app/version":
            return httpx.Response(200, text="v4.6.0")
        if path == "/api/v2/torrents/info":
            hashes = request.url.params.get("hashes")
            torrents = [t for t in self.torrents if not hashes or t["hash"].lower() == hashes.lower()]
            return httpx.Response(200, json=torrents)
        if path == "/api/v2/torrents/add":
            return httpx.Response(200, text=self.add_reply)
        if path == "/api/v2/torrents/delete":
            return httpx.Response(200)
        return httpx.Response(404)

    def form_of(self, request: httpx.Request) -> dict:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def make_client(server: FakeQBittorrent, password="adminadmin") -> QBittorrentClient:
    return QBittorrentClient(
        host=HOST,
        username="admin",
        password=password,
        transport=httpx.MockTransport(server.handler),
    )


class TestSession:

    @pytest.mark.asyncio
    async def test_login(self):
        server = FakeQBittorrent()
        client = make_client(server)

        await client.login()

        assert server.logins == 1
        assert client.generation == 1
        assert server.form_of(server.requests[0]) == {"username": "admin", "password": "adminadmin"}

    @pytest.mark.asyncio
    async def test_refused_credentials(self):
        client = make_client(FakeQBittorrent(), password="wrong")

        with pytest.raises(InvalidCredentialsError):
            await client.login()

    def test_host_without_scheme(self):
        client = QBittorrentClient(host="localhost:8080/")
        assert client.host == "http://localhost:8080"

    @pytest.mark.asyncio
    async def test_first_call_logs_in_lazily(self):
        server = FakeQBittorrent()
        client = make_client(server)

        await client.list_entries()

        assert server.logins == 1

    @pytest.mark.asyncio
    async def test_ensure_valid_probes_existing_session(self):
        server = FakeQBittorrent()
        client = make_client(server)
        await client.login()

        await client.ensure_valid()

        assert server.requests[-1].url.path == "/api/v2/app/version"
        assert server.logins == 1

    @pytest.mark.asyncio
    async def test_ensure_valid_is_single_flight(self):
        server = FakeQBittorrent()
        client = make_client(server)

        await asyncio.gather(*(client.ensure_valid() for _ in range(5)))

        assert server.logins == 1

    @pytest.mark.asyncio
    async def test_stale_session_is_renewed_by_probe(self):
        server = FakeQBittorrent()
        client = make_client(server)
        await client.login()
        server.sid = "expired-on-server"

        await client.ensure_valid()

        assert server.logins == 2


class TestReauthentication:

    @pytest.mark.asyncio
    async def test_single_403_is_retried_after_login(self):
        server = FakeQBittorrent()
        client = make_client(server)
        await client.login()
        # The probe in ensure_valid passes, then the call itself is rejected once
        server.forbid_once.add("/api/v2/torrents/info")

        entries = await client.list_entries()

        assert len(entries) == 3
        assert server.logins == 2
        paths = [r.url.path for r in server.requests]
        assert paths.count("/api/v2/torrents/info") == 2

    @pytest.mark.asyncio
    async def test_second_403_raises_auth_expired(self):
        server = FakeQBittorrent()
        client = make_client(server)
        await client.login()
        server.always_forbid = True

        with pytest.raises(AuthExpiredError):
            await client.remove("aaaa")

    @pytest.mark.asyncio
    async def test_concurrent_403s_share_one_login(self):
        server = FakeQBittorrent()
        client = make_client(server)
        await client.login()
        server.sid = "expired-on-server"
        # Skip the probe so every caller hits the 403 path
        client.ensure_valid = _noop

        results = await asyncio.gather(*(client.list_entries() for _ in range(4)))

        assert all(len(r) == 3 for r in results)
        assert server.logins == 2

    @pytest.mark.asyncio
    async def test_recover_relogs_and_swallows_failure(self):
        server = FakeQBittorrent()
        client = make_client(server)
        await client.login()

        server.password = "changed"
        await client.recover()

        assert server.logins == 1
        assert len(client._client.cookies) == 0


async def _noop():
    return None


class TestTorrents:

    @pytest.mark.asyncio
    async def test_list_entries_lowercases_hashes(self):
        client = make_client(FakeQBittorrent())

        entries = await client.list_entries()

        assert entries[0] == DownloadClientEntry(hash="aaaa", name="First", save_path="/data/tv")
        assert [e.hash for e in entries] == ["aaaa", "bbbb", "cccc"]

    @pytest.mark.asyncio
    async def test_add_payload_is_multipart(self):
        server = FakeQBittorrent()
        client = make_client(server)

        await client.add_payload("dddd", "/data/tv", b"d4:infod4:name1:xee")

        request = server.requests[-1]
        assert request.url.path == "/api/v2/torrents/add"
        assert request.headers["content-type"].startswith("multipart/form-data")
        body = request.content
        assert b'name="torrents"; filename="dddd.torrent"' in body
        assert b"d4:infod4:name1:xee" in body
        assert b'name="savepath"' in body and b"/data/tv" in body
        assert b'name="autoTMM"' in body

    @pytest.mark.asyncio
    async def test_add_by_identity_sends_magnet(self):
        server = FakeQBittorrent()
        client = make_client(server)

        await client.add_by_identity("dddd", "/downloads")

        form = server.form_of(server.requests[-1])
        assert form["urls"] == "magnet:?xt=urn:btih:dddd"
        assert form["savepath"] == "/downloads"

    @pytest.mark.asyncio
    async def test_fails_reply_means_already_present(self):
        server = FakeQBittorrent()
        server.add_reply = "Fails."
        client = make_client(server)

        await client.add_by_identity("aaaa", "/downloads")

    @pytest.mark.asyncio
    async def test_unexpected_add_reply_raises(self):
        server = FakeQBittorrent()
        server.add_reply = "Torrent file is not valid"
        client = make_client(server)

        with pytest.raises(DownloadClientError):
            await client.add_payload("dddd", "/downloads", b"junk")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delete_files,expected", [(True, "true"), (False, "false")])
    async def test_remove(self, delete_files, expected):
        server = FakeQBittorrent()
        client = make_client(server)

        await client.remove("bbbb", delete_files=delete_files)

        form = server.form_of(server.requests[-1])
        assert form == {"hashes": "bbbb", "deleteFiles": expected}

    @pytest.mark.asyncio
    async def test_save_path_of(self):
        client = make_client(FakeQBittorrent())
        assert await client.save_path_of("bbbb") == "/data/movies"

    @pytest.mark.asyncio
    async def test_save_path_of_unknown_hash(self):
        client = make_client(FakeQBittorrent())
        with pytest.raises(EntryNotFoundError):
            await client.save_path_of("ffff")

    @pytest.mark.asyncio
    async def test_save_path_of_empty_path(self):
        client = make_client(FakeQBittorrent(torrents=[{"hash": "eeee", "name": "x", "save_path": ""}]))
        with pytest.raises(EntryNotFoundError):
            await client.save_path_of("eeee")

    @pytest.mark.asyncio
    async def test_download_paths_most_used_first(self):
        client = make_client(FakeQBittorrent())
        assert await client.download_paths() == ["/data/tv", "/data/movies"]

    @pytest.mark.asyncio
    async def test_server_error_is_download_client_error(self):
        server = FakeQBittorrent()
        server.fail_paths["/api/v2/torrents/delete"] = 500
        client = make_client(server)

        with pytest.raises(DownloadClientError) as exc_info:
            await client.remove("aaaa")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error_is_retryable(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = QBittorrentClient(host=HOST, transport=httpx.MockTransport(unreachable))

        with pytest.raises(NetworkRetryableError):
            await client.list_entries()


class TestConnection:

    @pytest.mark.asyncio
    async def test_connection_ok(self):
        result = await make_client(FakeQBittorrent()).test_connection()
        assert result == {'success': True, 'message': 'Connected to qBittorrent v4.6.0', 'version': 'v4.6.0'}

    @pytest.mark.asyncio
    async def test_connection_refused_credentials(self):
        result = await make_client(FakeQBittorrent(), password="bad").test_connection()
        assert result['success'] is False
