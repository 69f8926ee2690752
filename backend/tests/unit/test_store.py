"""
Unit tests for TrackedItemStore

Runs against an in-memory SQLite database shared across sessions.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from trackwatch.models import Base, TrackedItem
from trackwatch.services.store import TrackedItemStore

URL = "https://kinozal.tv/details.php?id=1"


@pytest.fixture
def db_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield TrackedItemStore(sessionmaker(bind=engine, autoflush=False))
    engine.dispose()


def test_insert_assigns_id(db_store):
    stored = db_store.upsert_item(TrackedItem(id=None, url=URL, title="Film", hash="ABC", save_path="/data"))

    assert stored.id is not None
    assert stored.hash == "abc"
    assert db_store.get_item(stored.id) == stored
    assert db_store.get_by_url(URL) == stored


def test_update_matches_by_url_and_keeps_watch_interval(db_store):
    first = db_store.upsert_item(TrackedItem(id=None, url=URL, hash="old"))
    assert db_store.set_watch_interval(first.id, 15)

    second = db_store.upsert_item(TrackedItem(id=None, url=URL, hash="new", title="New"))

    assert second.id == first.id
    assert second.hash == "new"
    assert second.watch_every == 15
    assert len(db_store.list_items()) == 1


def test_list_items_ordered_by_id(db_store):
    ids = [db_store.upsert_item(TrackedItem(id=None, url=f"{URL}{n}")).id for n in range(3)]

    assert [item.id for item in db_store.list_items()] == ids


def test_delete_item(db_store):
    stored = db_store.upsert_item(TrackedItem(id=None, url=URL))

    assert db_store.delete_item(stored.id) is True
    assert db_store.delete_item(stored.id) is False
    assert db_store.get_item(stored.id) is None


def test_set_watch_interval_unknown_item(db_store):
    assert db_store.set_watch_interval(404, 5) is False


def test_ping(db_store):
    db_store.ping()


def test_upsert_of_deleted_item_is_refused(db_store):
    stored = db_store.upsert_item(TrackedItem(id=None, url=URL, hash="old", watch_every=10))
    db_store.delete_item(stored.id)

    with pytest.raises(LookupError):
        db_store.upsert_item(stored.evolve(hash="new"))

    assert db_store.list_items() == []
