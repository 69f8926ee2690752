"""
Unit Tests for the HTTP and WebSocket routes

The routers are mounted on a bare FastAPI app whose state holds a
WatchEngine built over the in-memory fakes. The engine is never started,
so no watcher or supervisor runs during these tests.

Test Coverage:
    - Torrent CRUD endpoints and their status codes
    - Event feed snapshot over WebSocket
    - Health probes
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from trackwatch.api.health_routes import router as health_router
from trackwatch.api.torrent_routes import router as torrent_router
from trackwatch.api.ws_routes import router as ws_router
from trackwatch.services.exceptions import DownloadClientError
from trackwatch.services.watch_engine import WatchEngine
from fakes import page_url


@pytest.fixture
def engine(store, trackers, client, notifier, feed):
    return WatchEngine(
        store=store,
        trackers=trackers,
        client=client,
        notifier=notifier,
        feed=feed,
        default_save_path="/downloads",
    )


@pytest.fixture
def api(engine):
    app = FastAPI()
    app.include_router(torrent_router)
    app.include_router(ws_router)
    app.include_router(health_router)
    app.state.engine = engine
    return TestClient(app)


class TestTorrentRoutes:

    def test_list_torrents(self, api, store):
        store.add(page_url(1), title="Film", hash="abc", watch_every=5)

        response = api.get("/api/torrents")

        assert response.status_code == 200
        assert response.json() == [{
            "id": 1,
            "url": page_url(1),
            "title": "Film",
            "name": "",
            "hash": "abc",
            "save_path": "",
            "watch_every": 5,
        }]

    def test_add_success(self, api, tracker, client):
        tracker.publish(page_url(2), "abc", title="Film")

        response = api.post("/api/add", json={"url": page_url(2), "download_path": "/data/films"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["item"]["hash"] == "abc"
        assert body["item"]["save_path"] == "/data/films"
        assert client.mutations() == [("add_payload", "abc", "/data/films")]

    def test_add_duplicate(self, api, tracker, client):
        client.add_entry("abc", "/data")
        tracker.publish(page_url(2), "abc")

        response = api.post("/api/add", json={"url": page_url(2)})

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert response.json()["error"] == "torrent already exists in download client"

    def test_add_unknown_tracker(self, api, store):
        response = api.post("/api/add", json={"url": "https://example.org/t/1"})

        assert response.status_code == 400
        assert "no suitable tracker found" in response.json()["detail"]
        assert store.items == {}

    def test_add_empty_url(self, api):
        response = api.post("/api/add", json={"url": "   "})
        assert response.status_code == 400

    def test_add_tracker_failure(self, api):
        # Nothing published: the hash lookup gives up
        response = api.post("/api/add", json={"url": page_url(3)})

        assert response.status_code == 502
        assert response.json()["detail"] == "hash is empty"

    def test_remove(self, api, store, client):
        item = store.add(page_url(1), title="Film", hash="abc")
        client.add_entry("abc", "/data")

        response = api.request("DELETE", "/api/remove", json={"id": item.id})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Torrent Film removed"}
        assert client.mutations() == [("remove", "abc", True)]

    def test_remove_unknown(self, api):
        response = api.request("DELETE", "/api/remove", json={"id": 7})
        assert response.status_code == 404

    def test_remove_client_failure(self, api, store, client):
        item = store.add(page_url(1), hash="abc")
        client.remove_error = DownloadClientError("qBittorrent unreachable")

        response = api.request("DELETE", "/api/remove", json={"id": item.id})

        assert response.status_code == 502
        assert store.get_item(item.id) is not None

    def test_watch(self, api, store):
        item = store.add(page_url(1))

        response = api.post("/api/watch", json={"id": item.id, "watch_every": 30})

        assert response.status_code == 200
        assert response.json()["watch_every"] == 30

    def test_watch_negative_interval_rejected(self, api, store):
        item = store.add(page_url(1))
        response = api.post("/api/watch", json={"id": item.id, "watch_every": -5})
        assert response.status_code == 422

    def test_watch_unknown(self, api):
        response = api.post("/api/watch", json={"id": 9, "watch_every": 5})
        assert response.status_code == 404

    def test_download_paths(self, api, client):
        client.add_entry("a", "/data/tv")
        client.add_entry("b", "/data/tv")
        client.add_entry("c", "/data/films")

        response = api.get("/api/download-paths")

        assert response.json() == ["/data/tv", "/data/films"]

    def test_check_info(self, api, store, feed):
        item = store.add(page_url(1))
        feed.record_check(item.url, False)

        response = api.get("/api/check-info")

        assert response.status_code == 200
        assert response.json()[item.url]["last_check_success"] is False

    def test_check_info_includes_unchecked_items(self, api, store):
        item = store.add(page_url(1))

        response = api.get("/api/check-info")

        assert list(response.json()) == [item.url]
        assert response.json()[item.url]["last_check_success"] is True


class TestEventFeedSocket:

    def test_snapshot_on_connect(self, api, store, feed):
        item = store.add(page_url(1))
        feed.record_check(item.url, True)

        with api.websocket_connect("/ws") as ws:
            message = ws.receive_json()

        assert message["type"] == "current_state"
        assert message["data"][item.url]["last_check_success"] is True

    def test_snapshot_includes_unwatched_items(self, api, store):
        item = store.add(page_url(1), watch_every=0)

        with api.websocket_connect("/ws") as ws:
            message = ws.receive_json()

        assert message["data"][item.url]["last_check_success"] is True


class TestHealthRoutes:

    def test_live(self, api):
        assert api.get("/health/live").json() == {"status": "alive"}

    def test_ready(self, api):
        assert api.get("/health/ready").status_code == 200

    def test_ready_database_down(self, api, store):
        def broken():
            raise RuntimeError("disk I/O error")

        store.ping = broken

        response = api.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_detailed(self, api):
        response = api.get("/health/detailed")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["qbittorrent"]["version"] == "v4.6.0"
        assert body["engine"]["trackers"] == ["fake"]
        assert body["engine"]["supervisor"]["halted"] is False
