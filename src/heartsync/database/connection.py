"""SQLite connection and initialization utilities."""

import sqlite3
import threading
from pathlib import Path

from .schema import get_init_schema, SCHEMA_VERSION
from ..core.exceptions import StorageError


class DatabaseConnection:
    """Manage per-thread SQLite connections to one database file."""

    __slots__ = ("db_path", "timeout", "_local", "_lock", "_initialized")

    def __init__(self, db_path="./heartsync.db", timeout=5.0):
        """Initialize connection state. Nothing is opened until first use."""
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self):
        """Create tables if needed. Safe to call repeatedly."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = self._get_connection()
                # WAL lets readers in other processes poll while a writer commits
                conn.execute("PRAGMA journal_mode = WAL")
                for statement in get_init_schema():
                    conn.execute(statement)
                self._initialized = True
            except sqlite3.Error as e:
                raise StorageError(f"Failed to initialize database: {e}")

    def _get_connection(self):
        """Get or create the calling thread's connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            # autocommit mode; explicit transactions go through transaction()
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
        return conn

    def transaction(self):
        """Return a context manager wrapping BEGIN IMMEDIATE/COMMIT/ROLLBACK."""
        return TransactionContext(self._get_connection())

    def execute(self, query, params=()):
        """Execute a single statement outside an explicit transaction."""
        cursor = self._get_connection().cursor()
        try:
            cursor.execute(query, params)
            return cursor.rowcount
        finally:
            cursor.close()

    def fetch_one(self, query, params=()):
        """Fetch a single row as a dict or None."""
        cursor = self._get_connection().cursor()
        try:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row else None
        finally:
            cursor.close()

    def fetch_all(self, query, params=()):
        """Fetch all rows as a list of dicts."""
        cursor = self._get_connection().cursor()
        try:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def get_version(self):
        """Return current schema version number, 0 if unknown."""
        try:
            result = self.fetch_one("SELECT MAX(version) AS version FROM schema_version")
            return result["version"] if result and result["version"] else 0
        except sqlite3.Error:
            return 0

    def is_current(self):
        return self.get_version() == SCHEMA_VERSION

    def close(self):
        """Close the calling thread's connection if open."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None


class TransactionContext:
    """Context manager for a write transaction; yields a cursor."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        self.cursor = self.connection.cursor()
        # take the write lock up front so concurrent writers queue on busy timeout
        self.cursor.execute("BEGIN IMMEDIATE")
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.connection.execute("COMMIT")
            else:
                self.connection.execute("ROLLBACK")
        finally:
            self.cursor.close()
