"""Small helper to build a HeartSync app context for the TUI and scripts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from heartsync.core.media import MediaStore
from heartsync.core.state import StateController
from heartsync.core.store import StoreAdapter
from heartsync.database.backends import SqliteKeyValueBackend
from heartsync.database.connection import DatabaseConnection
from heartsync.security.pin import PinLock
from heartsync.sync.exporter import SnapshotExporter
from heartsync.sync.importer import SnapshotImporter
from heartsync.sync.propagator import CrossTabPropagator, SqliteChangeFeed

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".heartsync"
DEFAULT_POLL_INTERVAL = 1.0


@dataclass
class AppContext:
    """Container for runtime objects the UI needs. Built once per process."""

    db: DatabaseConnection
    store: StoreAdapter
    controller: StateController
    exporter: SnapshotExporter
    importer: SnapshotImporter
    feed: SqliteChangeFeed
    propagator: CrossTabPropagator
    media: MediaStore
    pin: PinLock

    def close(self) -> None:
        self.propagator.stop()
        self.feed.stop()
        self.db.close()


def _poll_interval() -> float:
    raw = os.getenv("HEARTSYNC_POLL_INTERVAL")
    if not raw:
        return DEFAULT_POLL_INTERVAL
    try:
        return max(0.1, float(raw))
    except ValueError:
        logger.warning("Ignoring invalid HEARTSYNC_POLL_INTERVAL=%r", raw)
        return DEFAULT_POLL_INTERVAL


def build_context(
    db_path: Optional[str | Path] = None,
    media_root: Optional[str | Path] = None,
    watch: bool = True,
) -> AppContext:
    """
    Wire backend, adapter, state controller, sync components and media store.

    Configuration comes from arguments first, then environment variables:

    - ``HEARTSYNC_DB``: SQLite file (default ``~/.heartsync/heartsync.db``)
    - ``HEARTSYNC_MEDIA``: media root (default ``~/.heartsync/media``)
    - ``HEARTSYNC_POLL_INTERVAL``: seconds between change-log polls (default 1.0)

    With ``watch=True`` the change feed polls in a background thread so
    writes from other processes reload this process's state.
    """
    db_path = Path(db_path or os.getenv("HEARTSYNC_DB") or DEFAULT_HOME / "heartsync.db")
    media_root = Path(media_root or os.getenv("HEARTSYNC_MEDIA") or DEFAULT_HOME / "media")

    db = DatabaseConnection(str(db_path.expanduser()))
    backend = SqliteKeyValueBackend(db)
    store = StoreAdapter(backend)
    controller = StateController(store)

    feed = SqliteChangeFeed(backend, store.origin, interval=_poll_interval())
    propagator = CrossTabPropagator(feed, controller)
    propagator.start()
    if watch:
        feed.start()

    return AppContext(
        db=db,
        store=store,
        controller=controller,
        exporter=SnapshotExporter(store),
        importer=SnapshotImporter(store),
        feed=feed,
        propagator=propagator,
        media=MediaStore(media_root),
        pin=PinLock(store),
    )
