"""
Raw key-value backends.

A backend stores opaque strings under string keys and records one change
notification per mutation, tagged with the origin (execution context) that
made it. The store adapter is the only caller; it owns JSON encoding and the
registry.

Two implementations:

- :class:`SqliteKeyValueBackend` persists to a SQLite file that every
  process on the device shares. Other processes learn about writes by
  polling the change log (see ``sync.propagator.SqliteChangeFeed``).
- :class:`MemoryKeyValueBackend` keeps everything in a dict and delivers
  change notifications synchronously to listeners of *other* origins.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .connection import DatabaseConnection
from ..core.exceptions import QuotaExceededError, StorageError

# Oldest change rows are pruned past this many entries
CHANGE_LOG_LIMIT = 1000


@dataclass(frozen=True)
class Change:
    seq: int
    key: str
    origin: str


class KeyValueBackend:
    """Interface shared by all backends."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str, origin: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str, origin: str) -> None:
        raise NotImplementedError

    def changes_since(self, seq: int, exclude_origin: Optional[str] = None) -> List[Change]:
        raise NotImplementedError

    def latest_seq(self) -> int:
        raise NotImplementedError


class MemoryKeyValueBackend(KeyValueBackend):
    """In-process backend. Several adapters may share one instance to model tabs."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._items: Dict[str, str] = {}
        self._changes: List[Change] = []
        self._listeners: List[Tuple[str, Callable[[Change], None]]] = []
        self._lock = threading.RLock()

    def _used_bytes(self, excluding: str) -> int:
        return sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != excluding)

    def get_item(self, key):
        with self._lock:
            return self._items.get(key)

    def set_item(self, key, value, origin):
        with self._lock:
            if self.quota_bytes is not None:
                if self._used_bytes(key) + len(value.encode("utf-8")) > self.quota_bytes:
                    raise QuotaExceededError(f"Quota exceeded writing {key}")
            self._items[key] = value
            change = self._record(key, origin)
        self._notify(change)

    def remove_item(self, key, origin):
        with self._lock:
            if key not in self._items:
                return
            del self._items[key]
            change = self._record(key, origin)
        self._notify(change)

    def _record(self, key: str, origin: str) -> Change:
        seq = self._changes[-1].seq + 1 if self._changes else 1
        change = Change(seq=seq, key=key, origin=origin)
        self._changes.append(change)
        del self._changes[:-CHANGE_LOG_LIMIT]
        return change

    def changes_since(self, seq, exclude_origin=None):
        with self._lock:
            return [
                c for c in self._changes
                if c.seq > seq and (exclude_origin is None or c.origin != exclude_origin)
            ]

    def latest_seq(self):
        with self._lock:
            return self._changes[-1].seq if self._changes else 0

    # listener plumbing used by MemoryChangeFeed

    def add_listener(self, origin: str, callback: Callable[[Change], None]) -> None:
        with self._lock:
            self._listeners.append((origin, callback))

    def remove_listener(self, origin: str, callback: Callable[[Change], None]) -> None:
        with self._lock:
            self._listeners = [
                (o, cb) for (o, cb) in self._listeners if not (o == origin and cb is callback)
            ]

    def _notify(self, change: Change) -> None:
        with self._lock:
            targets = [cb for (o, cb) in self._listeners if o != change.origin]
        for callback in targets:
            callback(change)


class SqliteKeyValueBackend(KeyValueBackend):
    """Backend persisted in SQLite, shared across processes on the device."""

    def __init__(self, db: DatabaseConnection, quota_bytes: Optional[int] = None):
        self.db = db
        self.quota_bytes = quota_bytes
        self.db.initialize()

    def get_item(self, key):
        try:
            row = self.db.fetch_one("SELECT value FROM kv_items WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}")
        return row["value"] if row else None

    def set_item(self, key, value, origin):
        try:
            with self.db.transaction() as cur:
                if self.quota_bytes is not None:
                    cur.execute(
                        "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) FROM kv_items WHERE key != ?",
                        (key,),
                    )
                    used = cur.fetchone()[0]
                    if used + len(value.encode("utf-8")) > self.quota_bytes:
                        raise QuotaExceededError(f"Quota exceeded writing {key}")
                cur.execute(
                    """
                    INSERT INTO kv_items (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value),
                )
                self._record(cur, key, origin)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key}: {e}")

    def remove_item(self, key, origin):
        try:
            with self.db.transaction() as cur:
                cur.execute("DELETE FROM kv_items WHERE key = ?", (key,))
                if cur.rowcount:
                    self._record(cur, key, origin)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key}: {e}")

    def _record(self, cur, key: str, origin: str) -> None:
        cur.execute("INSERT INTO kv_changes (key, origin) VALUES (?, ?)", (key, origin))
        cur.execute("DELETE FROM kv_changes WHERE seq <= ?", (cur.lastrowid - CHANGE_LOG_LIMIT,))

    def changes_since(self, seq, exclude_origin=None):
        query = "SELECT seq, key, origin FROM kv_changes WHERE seq > ?"
        params: tuple = (seq,)
        if exclude_origin is not None:
            query += " AND origin != ?"
            params = (seq, exclude_origin)
        query += " ORDER BY seq"
        try:
            rows = self.db.fetch_all(query, params)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read change log: {e}")
        return [Change(seq=r["seq"], key=r["key"], origin=r["origin"]) for r in rows]

    def latest_seq(self):
        try:
            row = self.db.fetch_one("SELECT MAX(seq) AS seq FROM kv_changes")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read change log: {e}")
        return row["seq"] if row and row["seq"] is not None else 0
