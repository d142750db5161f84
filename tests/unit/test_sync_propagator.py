"""Unit tests for change feeds and the cross-context propagator."""

import time

import pytest
from unittest.mock import Mock

from heartsync.core.exceptions import StorageError
from heartsync.core.registry import KEYS
from heartsync.core.state import StateController
from heartsync.core.store import StoreAdapter
from heartsync.database.backends import Change, MemoryKeyValueBackend, SqliteKeyValueBackend
from heartsync.database.connection import DatabaseConnection
from heartsync.sync.propagator import CrossTabPropagator, MemoryChangeFeed, SqliteChangeFeed


# --- in-memory tabs ---


@pytest.fixture
def shared_backend():
    return MemoryKeyValueBackend()


def test_memory_feed_reports_other_tabs_only(shared_backend):
    tab_a = StoreAdapter(shared_backend, origin="tab-a")
    tab_b = StoreAdapter(shared_backend, origin="tab-b")
    seen = Mock()
    unsubscribe = MemoryChangeFeed(shared_backend, tab_a.origin).on_external_change(seen)

    tab_a.set(KEYS.PARTNER_1, "Alex")
    seen.assert_not_called()

    tab_b.set(KEYS.PARTNER_2, "Sam")
    seen.assert_called_once()
    assert seen.call_args.args[0].key == KEYS.PARTNER_2

    unsubscribe()
    tab_b.set(KEYS.NICKNAME, "Bear")
    seen.assert_called_once()


def test_propagator_reloads_state_on_external_write(shared_backend):
    tab_a = StoreAdapter(shared_backend, origin="tab-a")
    tab_b = StoreAdapter(shared_backend, origin="tab-b")
    controller = StateController(tab_a)
    propagator = CrossTabPropagator(MemoryChangeFeed(shared_backend, tab_a.origin), controller)
    propagator.start()

    tab_b.set(KEYS.PARTNER_1, "Alex")
    assert controller.state.relationship["partner1"] == "Alex"
    assert propagator.reloads == 1

    # own writes do not trigger a reload
    tab_a.set(KEYS.PARTNER_2, "Sam")
    assert propagator.reloads == 1

    propagator.stop()
    tab_b.set(KEYS.NICKNAME, "Bear")
    assert propagator.reloads == 1


def test_propagator_ignores_unregistered_keys():
    controller = Mock()
    propagator = CrossTabPropagator(Mock(), controller)
    propagator.handle_change(Change(seq=1, key="somebody_elses_key", origin="x"))
    controller.reload.assert_not_called()
    propagator.handle_change(Change(seq=2, key=KEYS.GOALS, origin="x"))
    controller.reload.assert_called_once()


def test_propagator_start_is_idempotent():
    feed = Mock()
    propagator = CrossTabPropagator(feed, Mock())
    propagator.start()
    propagator.start()
    feed.on_external_change.assert_called_once()


# --- SQLite feed ---


@pytest.fixture
def sqlite_backend(tmp_path):
    db = DatabaseConnection(str(tmp_path / "feed.db"))
    try:
        yield SqliteKeyValueBackend(db)
    finally:
        db.close()


def test_sqlite_feed_poll_filters_own_origin(sqlite_backend):
    feed = SqliteChangeFeed(sqlite_backend, "proc-a")
    seen = Mock()
    feed.on_external_change(seen)

    sqlite_backend.set_item(KEYS.PARTNER_1, '"Alex"', "proc-a")
    sqlite_backend.set_item(KEYS.PARTNER_2, '"Sam"', "proc-b")

    delivered = feed.poll()
    assert [c.key for c in delivered] == [KEYS.PARTNER_2]
    seen.assert_called_once_with(delivered[0])

    # already-seen rows are not delivered twice
    assert feed.poll() == []


def test_sqlite_feed_skips_history_before_creation(sqlite_backend):
    sqlite_backend.set_item(KEYS.PARTNER_1, '"Alex"', "proc-b")
    feed = SqliteChangeFeed(sqlite_backend, "proc-a")
    assert feed.poll() == []


def test_sqlite_feed_unsubscribe(sqlite_backend):
    feed = SqliteChangeFeed(sqlite_backend, "proc-a")
    seen = Mock()
    unsubscribe = feed.on_external_change(seen)
    unsubscribe()
    sqlite_backend.set_item(KEYS.PARTNER_1, '"Alex"', "proc-b")
    feed.poll()
    seen.assert_not_called()


def test_sqlite_feed_poll_survives_storage_error(sqlite_backend):
    feed = SqliteChangeFeed(sqlite_backend, "proc-a")
    feed.backend = Mock()
    feed.backend.changes_since.side_effect = StorageError("locked")
    assert feed.poll() == []


def test_sqlite_feed_background_thread(sqlite_backend):
    feed = SqliteChangeFeed(sqlite_backend, "proc-a", interval=0.05)
    seen = Mock()
    feed.on_external_change(seen)
    feed.start()
    try:
        sqlite_backend.set_item(KEYS.GOALS, "[]", "proc-b")
        deadline = time.monotonic() + 5
        while not seen.called and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        feed.stop()
    seen.assert_called_once()


def test_sqlite_feed_keeps_delivering_after_callback_error(sqlite_backend):
    feed = SqliteChangeFeed(sqlite_backend, "proc-a")
    seen = []

    def flaky(change):
        seen.append(change.key)
        if change.key == KEYS.PARTNER_1:
            raise RuntimeError("app already gone")

    other = Mock()
    feed.on_external_change(flaky)
    feed.on_external_change(other)

    sqlite_backend.set_item(KEYS.PARTNER_1, '"Alex"', "proc-b")
    assert [c.key for c in feed.poll()] == [KEYS.PARTNER_1]
    # the second subscriber still got the change
    other.assert_called_once()

    sqlite_backend.set_item(KEYS.PARTNER_2, '"Sam"', "proc-c")
    feed.poll()
    assert seen == [KEYS.PARTNER_1, KEYS.PARTNER_2]


def test_sqlite_feed_thread_survives_callback_error(sqlite_backend):
    feed = SqliteChangeFeed(sqlite_backend, "proc-a", interval=0.05)
    seen = []

    def flaky(change):
        seen.append(change.key)
        if change.key == KEYS.PARTNER_1:
            raise RuntimeError("app already gone")

    feed.on_external_change(flaky)
    feed.start()
    try:
        sqlite_backend.set_item(KEYS.PARTNER_1, '"Alex"', "proc-b")
        deadline = time.monotonic() + 5
        while KEYS.PARTNER_1 not in seen and time.monotonic() < deadline:
            time.sleep(0.02)

        sqlite_backend.set_item(KEYS.PARTNER_2, '"Sam"', "proc-b")
        deadline = time.monotonic() + 5
        while KEYS.PARTNER_2 not in seen and time.monotonic() < deadline:
            time.sleep(0.02)
        assert feed._thread.is_alive()
    finally:
        feed.stop()
    assert seen == [KEYS.PARTNER_1, KEYS.PARTNER_2]


def test_memory_feed_listener_error_does_not_fail_the_write(shared_backend):
    tab_b = StoreAdapter(shared_backend, origin="tab-b")
    feed = MemoryChangeFeed(shared_backend, "tab-a")
    feed.on_external_change(Mock(side_effect=RuntimeError("boom")))
    seen = Mock()
    feed.on_external_change(seen)

    assert tab_b.set(KEYS.PARTNER_1, "Alex")
    seen.assert_called_once()
