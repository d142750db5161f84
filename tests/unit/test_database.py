"""Unit tests covering ``DatabaseConnection`` and the SQLite key-value backend."""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from heartsync.core.exceptions import QuotaExceededError
from heartsync.database.backends import CHANGE_LOG_LIMIT, SqliteKeyValueBackend
from heartsync.database.connection import DatabaseConnection
from heartsync.database.schema import SCHEMA_VERSION


@pytest.fixture()
def temp_db() -> Generator[DatabaseConnection, None, None]:
    """Provide a temporary, initialized ``DatabaseConnection`` instance."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "heartsync.db"
        db = DatabaseConnection(db_path)
        db.initialize()
        try:
            yield db
        finally:
            db.close()


@pytest.fixture()
def backend(temp_db: DatabaseConnection) -> SqliteKeyValueBackend:
    return SqliteKeyValueBackend(temp_db)


def test_initialize_is_idempotent(temp_db: DatabaseConnection) -> None:
    """Ensure schema initialization can be invoked multiple times safely."""
    temp_db.initialize()
    assert temp_db.get_version() == SCHEMA_VERSION
    assert temp_db.is_current()


def test_transaction_rolls_back_on_error(temp_db: DatabaseConnection) -> None:
    with pytest.raises(RuntimeError):
        with temp_db.transaction() as cur:
            cur.execute("INSERT INTO kv_items (key, value) VALUES ('k', 'v')")
            raise RuntimeError("boom")
    assert temp_db.fetch_one("SELECT * FROM kv_items WHERE key = 'k'") is None


def test_set_get_remove(backend: SqliteKeyValueBackend) -> None:
    assert backend.get_item("rc_partner1") is None
    backend.set_item("rc_partner1", '"Alex"', "tab-a")
    assert backend.get_item("rc_partner1") == '"Alex"'
    backend.set_item("rc_partner1", '"Sam"', "tab-a")
    assert backend.get_item("rc_partner1") == '"Sam"'
    backend.remove_item("rc_partner1", "tab-a")
    assert backend.get_item("rc_partner1") is None


def test_change_log_records_each_mutation(backend: SqliteKeyValueBackend) -> None:
    backend.set_item("rc_partner1", '"Alex"', "tab-a")
    backend.set_item("rc_partner2", '"Sam"', "tab-b")
    backend.remove_item("rc_partner1", "tab-a")
    # removing a missing key is not a change
    backend.remove_item("rc_nickname", "tab-a")

    changes = backend.changes_since(0)
    assert [(c.key, c.origin) for c in changes] == [
        ("rc_partner1", "tab-a"),
        ("rc_partner2", "tab-b"),
        ("rc_partner1", "tab-a"),
    ]
    assert backend.latest_seq() == changes[-1].seq
    assert [c.key for c in backend.changes_since(0, exclude_origin="tab-a")] == ["rc_partner2"]
    assert backend.changes_since(changes[-1].seq) == []


def test_latest_seq_empty(backend: SqliteKeyValueBackend) -> None:
    assert backend.latest_seq() == 0


def test_change_log_is_pruned(backend: SqliteKeyValueBackend) -> None:
    for i in range(CHANGE_LOG_LIMIT + 5):
        backend.set_item("rc_love_note", f'"{i}"', "tab-a")
    rows = backend.db.fetch_one("SELECT COUNT(*) AS n FROM kv_changes")
    assert rows["n"] == CHANGE_LOG_LIMIT


def test_quota_rejects_and_rolls_back(temp_db: DatabaseConnection) -> None:
    backend = SqliteKeyValueBackend(temp_db, quota_bytes=20)
    backend.set_item("rc_partner1", '"Alex"', "tab-a")
    with pytest.raises(QuotaExceededError):
        backend.set_item("rc_love_note", '"' + "x" * 50 + '"', "tab-a")
    assert backend.get_item("rc_love_note") is None
    assert len(backend.changes_since(0)) == 1


def test_quota_counts_replacement_not_old_value(temp_db: DatabaseConnection) -> None:
    backend = SqliteKeyValueBackend(temp_db, quota_bytes=20)
    backend.set_item("rc_love_note", '"' + "x" * 15 + '"', "tab-a")
    # overwriting the same key only counts the new value
    backend.set_item("rc_love_note", '"' + "y" * 15 + '"', "tab-a")
    assert backend.get_item("rc_love_note").startswith('"y')


def test_values_persist_across_connections(tmp_path) -> None:
    db_path = tmp_path / "shared.db"
    first = DatabaseConnection(str(db_path))
    SqliteKeyValueBackend(first).set_item("rc_partner1", '"Alex"', "tab-a")
    first.close()

    second = DatabaseConnection(str(db_path))
    try:
        assert SqliteKeyValueBackend(second).get_item("rc_partner1") == '"Alex"'
    finally:
        second.close()
