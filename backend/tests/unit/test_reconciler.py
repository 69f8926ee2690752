"""
Unit tests for Reconciler

Covers the three transitions and their failure handling:
- Add when the recorded hash is missing from the download client
- No-op when the tracker hash is unchanged
- Replace when the tracker serves a new hash, with save path fallbacks
"""

import pytest

from trackwatch.services.exceptions import (
    AuthExpiredError,
    DownloadClientError,
    EntryNotFoundError,
    NotAPayloadError,
    NotificationError,
    TrackerAPIError,
)
from fakes import page_url

URL = page_url(1)


def check_of(feed, url=URL):
    return feed.check_infos([url])[url]["last_check_success"]


class TestAddPath:

    @pytest.mark.asyncio
    async def test_missing_hash_is_added(self, reconciler, tracker, client, store, notifier, feed):
        item = store.add(URL, hash="old", title="Old", save_path="/data/tv")
        tracker.publish(URL, "NEW", title="New Title")

        result = await reconciler.reconcile(item)

        assert client.mutations() == [("add_payload", "new", "/data/tv")]
        assert result.hash == "new"
        assert result.title == "New Title"
        assert result.name == "release-1"
        assert store.get_item(item.id).hash == "new"
        assert [kind for kind, _ in notifier.sent] == ["added"]
        assert check_of(feed) is True

    @pytest.mark.asyncio
    async def test_item_without_hash_uses_default_save_path(self, reconciler, tracker, client, store):
        item = store.add(URL)
        tracker.publish(URL, "abc")

        await reconciler.reconcile(item)

        assert client.mutations() == [("add_payload", "abc", "/downloads")]

    @pytest.mark.asyncio
    async def test_payload_failure_falls_back_to_magnet(self, reconciler, tracker, client, store):
        item = store.add(URL, save_path="/data")
        tracker.publish(URL, "abc")
        tracker.payload_error = NotAPayloadError("login page")

        result = await reconciler.reconcile(item)

        assert client.mutations() == [("add_by_identity", "abc", "/data")]
        assert result.hash == "abc"

    @pytest.mark.asyncio
    async def test_client_rejection_records_nothing(self, reconciler, tracker, client, store, notifier, feed):
        item = store.add(URL, hash="old")
        tracker.publish(URL, "abc")
        client.add_error = DownloadClientError("Failed to add torrent")

        result = await reconciler.reconcile(item)

        assert result is item
        assert store.writes == 0
        assert notifier.sent == []
        assert check_of(feed) is False

    @pytest.mark.asyncio
    async def test_title_falls_back_to_previous_then_hash(self, reconciler, tracker, store):
        tracker.title_error = TrackerAPIError("no title")
        tracker.publish(URL, "abc")
        other = page_url(2)
        tracker.publish(other, "def")

        kept = await reconciler.reconcile(store.add(URL, title="Known"))
        hashed = await reconciler.reconcile(store.add(other))

        assert kept.title == "Known"
        assert hashed.title == "def"


class TestNoOp:

    @pytest.mark.asyncio
    async def test_unchanged_hash_does_nothing(self, reconciler, tracker, client, store, notifier, feed):
        client.add_entry("abc", "/data")
        item = store.add(URL, hash="abc", title="T")
        tracker.publish(URL, "ABC")

        result = await reconciler.reconcile(item)

        assert result == item
        assert client.mutations() == []
        assert store.writes == 0
        assert notifier.sent == []
        assert check_of(feed) is True

    @pytest.mark.asyncio
    async def test_identity_failure_ends_tick(self, reconciler, tracker, client, store, feed):
        client.add_entry("abc", "/data")
        item = store.add(URL, hash="abc")

        result = await reconciler.reconcile(item)

        # No hash published: the bounded identity loop gives up
        assert result is item
        assert tracker.identity_calls == tracker.max_identity_attempts
        assert client.mutations() == []
        assert check_of(feed) is False

    @pytest.mark.asyncio
    async def test_expired_client_session_recovers(self, reconciler, client, store, feed):
        client.list_error = AuthExpiredError("forbidden")
        item = store.add(URL, hash="abc")

        result = await reconciler.reconcile(item)

        assert result is item
        assert client.recover_count == 1
        assert client.mutations() == []
        assert check_of(feed) is False


class TestReplacePath:

    @pytest.mark.asyncio
    async def test_new_hash_replaces_in_same_save_path(self, reconciler, tracker, client, store, notifier, feed):
        client.add_entry("old", "/data/tv")
        item = store.add(URL, hash="old", title="Show", save_path="/stale")
        tracker.publish(URL, "new", title="Show S01E02")
        queue = feed.subscribe()

        result = await reconciler.reconcile(item)

        assert client.mutations() == [
            ("remove", "old", False),
            ("add_payload", "new", "/data/tv"),
        ]
        assert result.hash == "new"
        assert result.save_path == "/data/tv"
        assert store.get_item(item.id) == result
        assert [kind for kind, _ in notifier.sent] == ["updated"]

        messages = [queue.get_nowait() for _ in range(queue.qsize())]
        updated = next(m for m in messages if m["type"] == "updated")
        assert updated["data"]["old_hash"] == "old"
        assert updated["data"]["hash"] == "new"

    @pytest.mark.asyncio
    async def test_save_path_falls_back_to_last_known(self, reconciler, tracker, client, store):
        client.add_entry("old", "")
        item = store.add(URL, hash="old", save_path="/last/known")
        tracker.publish(URL, "new")

        result = await reconciler.reconcile(item)

        assert ("add_payload", "new", "/last/known") in client.mutations()
        assert result.save_path == "/last/known"

    @pytest.mark.asyncio
    async def test_save_path_falls_back_to_default(self, reconciler, tracker, client, store):
        client.add_entry("old", "/data")
        client.save_path_error = EntryNotFoundError("old")
        item = store.add(URL, hash="old")
        tracker.publish(URL, "new")

        result = await reconciler.reconcile(item)

        assert result.save_path == "/downloads"

    @pytest.mark.asyncio
    async def test_remove_failure_leaves_store_untouched(self, reconciler, tracker, client, store, notifier, feed):
        client.add_entry("old", "/data")
        client.remove_error = DownloadClientError("delete failed", status_code=500)
        item = store.add(URL, hash="old")
        tracker.publish(URL, "new")

        result = await reconciler.reconcile(item)

        assert result is item
        assert store.get_item(item.id).hash == "old"
        assert store.writes == 0
        assert [c[0] for c in client.mutations()] == ["remove"]
        assert notifier.sent == []
        assert check_of(feed) is False

    @pytest.mark.asyncio
    async def test_notification_failure_is_not_fatal(self, reconciler, tracker, client, store, notifier, feed):
        client.add_entry("old", "/data")
        notifier.error = NotificationError("chat not found", status_code=400)
        item = store.add(URL, hash="old")
        tracker.publish(URL, "new")

        result = await reconciler.reconcile(item)

        assert result.hash == "new"
        assert store.get_item(item.id).hash == "new"
        assert check_of(feed) is True

    @pytest.mark.asyncio
    async def test_watch_interval_survives_replace(self, reconciler, tracker, client, store):
        client.add_entry("old", "/data")
        item = store.add(URL, hash="old", watch_every=15)
        tracker.publish(URL, "new")

        await reconciler.reconcile(item)

        assert store.get_item(item.id).watch_every == 15


def delete_while_fetching_title(tracker, store, item_id):
    """Make the tracker's title lookup remove the item, as a concurrent DELETE would."""
    fetch_title = tracker._get_title

    def _get_title(url):
        store.delete_item(item_id)
        return fetch_title(url)

    tracker._get_title = _get_title


class TestRemovedDuringTick:

    @pytest.mark.asyncio
    async def test_add_path_does_not_bring_item_back(self, reconciler, tracker, client, store, notifier, feed):
        item = store.add(URL, hash="old", save_path="/data", watch_every=10)
        tracker.publish(URL, "new")
        delete_while_fetching_title(tracker, store, item.id)

        result = await reconciler.reconcile(item)

        assert result is item
        assert store.list_items() == []
        assert client.mutations() == []
        assert notifier.sent == []
        assert feed.check_infos() == {}

    @pytest.mark.asyncio
    async def test_replace_path_does_not_record_or_push(self, reconciler, tracker, client, store, notifier):
        client.add_entry("old", "/data")
        item = store.add(URL, hash="old", watch_every=10)
        tracker.publish(URL, "new")
        delete_while_fetching_title(tracker, store, item.id)

        await reconciler.reconcile(item)

        assert store.list_items() == []
        assert client.mutations() == [("remove", "old", False)]
        assert notifier.sent == []

    def test_store_refuses_to_recreate_deleted_item(self, store):
        item = store.add(URL, hash="abc")
        store.delete_item(item.id)

        with pytest.raises(LookupError):
            store.upsert_item(item.evolve(hash="new"))

        assert store.items == {}


class TestIdempotence:

    @pytest.mark.asyncio
    async def test_two_ticks_without_remote_change(self, reconciler, tracker, client, store, notifier):
        item = store.add(URL, hash="old", save_path="/data")
        tracker.publish(URL, "abc")

        await reconciler.reconcile(store.get_item(item.id))
        await reconciler.reconcile(store.get_item(item.id))

        assert store.writes <= 1
        assert [kind for kind, _ in notifier.sent] == ["added"]
        assert client.mutations() == [("add_payload", "abc", "/data")]
