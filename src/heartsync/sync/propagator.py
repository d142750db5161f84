"""
Cross-context change propagation.

Several instances of the app may have the same store open at once (several
windows, or a TUI next to the CLI script). Each adapter tags its writes with
its own origin; a :class:`ChangeFeed` reports writes from *other* origins
only, so an instance never reacts to its own writes.

On any external change to a registry key, :class:`CrossTabPropagator`
reloads the whole application state from storage. Storage always wins over
the in-memory copy.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from ..core.registry import is_registered
from ..core.state import StateController
from ..core.exceptions import StorageError
from ..database.backends import Change, MemoryKeyValueBackend, SqliteKeyValueBackend

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Change], None]


class ChangeFeed:
    """Observer interface over a source of external storage changes."""

    def on_external_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        raise NotImplementedError


class MemoryChangeFeed(ChangeFeed):
    """Synchronous feed over a shared :class:`MemoryKeyValueBackend`."""

    def __init__(self, backend: MemoryKeyValueBackend, origin: str):
        self.backend = backend
        self.origin = origin

    def on_external_change(self, callback):
        def guarded(change: Change) -> None:
            # the writer's set() must not fail because a listener did
            try:
                callback(change)
            except Exception:
                logger.exception("Change feed callback failed for %s", change.key)

        self.backend.add_listener(self.origin, guarded)
        return lambda: self.backend.remove_listener(self.origin, guarded)


class SqliteChangeFeed(ChangeFeed):
    """
    Polls the SQLite change log for rows written by other origins.

    Call :meth:`poll` directly, or :meth:`start` a background thread that
    polls every ``interval`` seconds.
    """

    def __init__(self, backend: SqliteKeyValueBackend, origin: str, interval: float = 1.0):
        self.backend = backend
        self.origin = origin
        self.interval = interval
        self._callbacks: List[ChangeCallback] = []
        self._lock = threading.Lock()
        # only changes made after the feed exists are reported
        self._last_seq = backend.latest_seq()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def on_external_change(self, callback):
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def poll(self) -> List[Change]:
        """Deliver external changes since the last poll; returns them."""
        with self._lock:
            since = self._last_seq
        try:
            seen = self.backend.changes_since(since)
        except StorageError as e:
            logger.warning("Change feed poll failed: %s", e)
            return []
        changes = [c for c in seen if c.origin != self.origin]
        with self._lock:
            if seen:
                self._last_seq = max(self._last_seq, seen[-1].seq)
            callbacks = list(self._callbacks)
        for change in changes:
            for callback in callbacks:
                # _last_seq is already past this change; a failing subscriber
                # must not stop delivery to the others or to later polls
                try:
                    callback(change)
                except Exception:
                    logger.exception("Change feed callback failed for %s", change.key)
        return changes

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="heartsync-change-feed", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.poll()
            except Exception:
                logger.exception("Change feed poll crashed; retrying")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None


class CrossTabPropagator:
    """Reloads application state whenever another context changes a registry key."""

    def __init__(self, feed: ChangeFeed, controller: StateController):
        self.feed = feed
        self.controller = controller
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.reloads = 0

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.feed.on_external_change(self.handle_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle_change(self, change: Change) -> None:
        if not is_registered(change.key):
            return
        logger.info("Syncing state from another context (%s changed)", change.key)
        self.controller.reload()
        self.reloads += 1
