"""
In-memory application state and its single owning controller.

The controller is built once at start-up and handed to whatever needs it;
there is no module-level state. Storage is the ground truth: ``reload()``
rebuilds the whole :class:`AppState` from the store rather than patching it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from .registry import KEYS
from .store import StoreAdapter

logger = logging.getLogger(__name__)

# field name in AppState sections -> registry key
RELATIONSHIP_FIELDS: Dict[str, str] = {
    "partner1": KEYS.PARTNER_1,
    "partner2": KEYS.PARTNER_2,
    "nickname": KEYS.NICKNAME,
    "start_date": KEYS.START_DATE,
    "events": KEYS.EVENTS,
}
SETTINGS_FIELDS: Dict[str, str] = {
    "notifications": KEYS.NOTIFICATIONS,
    "ai_enabled": KEYS.AI_ENABLED,
    "ai_key": KEYS.AI_KEY,
    "app_lock_enabled": KEYS.LOCK_ENABLED,
    "setup_complete": KEYS.SETUP_COMPLETE,
    "photos_set": KEYS.PHOTOS_SET,
    "anniversary_type": KEYS.ANNIVERSARY_TYPE,
}
LONG_DISTANCE_FIELDS: Dict[str, str] = {
    "enabled": KEYS.LD_ENABLED,
    "offset": KEYS.LD_OFFSET,
    "meet": KEYS.LD_MEET,
    "my_loc": KEYS.LD_MY_LOC,
    "partner_loc": KEYS.LD_PARTNER_LOC,
}

LEGACY_EVENT_ID = "legacy-init"


@dataclass
class AppState:
    relationship: Dict[str, Any] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)


def load_state(store: StoreAdapter) -> AppState:
    """Read every section of the app state from the store."""
    relationship = {name: store.get(key) for name, key in RELATIONSHIP_FIELDS.items()}
    settings = {name: store.get(key) for name, key in SETTINGS_FIELDS.items()}
    settings["long_distance"] = {name: store.get(key) for name, key in LONG_DISTANCE_FIELDS.items()}
    return AppState(relationship=relationship, settings=settings)


class StateController:
    """Owns the current :class:`AppState` and every write that changes it."""

    def __init__(self, store: StoreAdapter):
        self.store = store
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[AppState], None]] = []
        self._state = load_state(store)
        self._repair_events()

    @property
    def state(self) -> AppState:
        return self._state

    def _repair_events(self) -> None:
        # events must be a list; older data only had a start date
        if isinstance(self._state.relationship.get("events"), list):
            return
        start_date = self.store.get(KEYS.START_DATE)
        events: List[dict] = []
        if start_date:
            events = [{
                "id": LEGACY_EVENT_ID,
                "title": "The Beginning",
                "date": start_date,
                "emoji": "💖",
                "isMain": True,
            }]
            self.store.set(KEYS.EVENTS, events)
        with self._lock:
            self._state.relationship["events"] = events

    def subscribe(self, callback: Callable[[AppState], None]) -> Callable[[], None]:
        """Call ``callback`` after every reload. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def reload(self) -> AppState:
        """Replace the in-memory state wholesale with what storage holds."""
        fresh = load_state(self.store)
        with self._lock:
            self._state = fresh
            subscribers = list(self._subscribers)
        self._repair_events()
        for callback in subscribers:
            callback(self._state)
        return self._state

    def update_relationship(self, **updates: Any) -> AppState:
        self._persist(updates, RELATIONSHIP_FIELDS, self._state.relationship)
        return self._state

    def update_settings(self, **updates: Any) -> AppState:
        long_distance = updates.pop("long_distance", None)
        self._persist(updates, SETTINGS_FIELDS, self._state.settings)
        if long_distance:
            self._persist(long_distance, LONG_DISTANCE_FIELDS, self._state.settings["long_distance"])
        return self._state

    def _persist(self, updates: Dict[str, Any], fields: Dict[str, str], section: Dict[str, Any]) -> None:
        unknown = set(updates) - set(fields)
        if unknown:
            raise KeyError(f"Unknown state fields: {', '.join(sorted(unknown))}")
        with self._lock:
            for name, value in updates.items():
                written = self.store.set(fields[name], value)
                if written:
                    section[name] = value
                else:
                    logger.warning("Keeping previous %s; write failed (%s)", name, written.error)

    def reset(self) -> AppState:
        """Factory reset: clear every registry key and reload defaults."""
        self.store.clear()
        return self.reload()
