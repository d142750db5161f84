"""
Key-value store adapter.

The adapter is the only component allowed to touch the raw backend. It owns
the registry, JSON encoding, defaulted reads and the bulk export/import used
by sync. Reads never raise for bad data; writes report failures per key as
:class:`StoreResult` values instead of raising, so one bad record cannot
abort a batch.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

from . import registry
from .exceptions import (
    MalformedSnapshotError,
    QuotaExceededError,
    StorageError,
    UnknownKeyError,
)
from .merge import merge_value, validate_value
from .models import StoreResult, SyncResult
from ..database.backends import KeyValueBackend

logger = logging.getLogger(__name__)

# Sentinel so callers can pass default=None explicitly
_MISSING = object()

QUOTA_EXCEEDED = "quota_exceeded"
SERIALIZATION = "serialization"
STORAGE = "storage"


class StoreAdapter:
    """Typed façade over a :class:`KeyValueBackend`."""

    KEYS = registry.KEYS

    def __init__(self, backend: KeyValueBackend, origin: Optional[str] = None):
        self.backend = backend
        # identifies this execution context in change notifications
        self.origin = origin or uuid.uuid4().hex

    @staticmethod
    def _slot(key: str) -> registry.Slot:
        slot = registry.get_slot(key)
        if slot is None:
            raise UnknownKeyError(key)
        return slot

    def get(self, key: str, default: Any = _MISSING) -> Any:
        """
        Return the JSON-decoded value under ``key``.

        Missing, unreadable or corrupt values yield ``default`` (the slot's
        canonical default when omitted).
        """
        slot = self._slot(key)
        fallback = slot.fresh_default() if default is _MISSING else default
        try:
            raw = self.backend.get_item(key)
        except StorageError as e:
            logger.warning("Error reading %s from storage: %s", key, e)
            return fallback
        if raw is None:
            return fallback
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Corrupt value stored under %s; using default", key)
            return fallback

    def set(self, key: str, value: Any) -> StoreResult:
        """JSON-encode ``value`` and write it under ``key``, overwriting."""
        self._slot(key)
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Error serializing %s: %s", key, e)
            return StoreResult(success=False, key=key, error=SERIALIZATION)
        try:
            self.backend.set_item(key, raw, self.origin)
        except QuotaExceededError:
            logger.error("Storage quota exceeded writing %s", key)
            return StoreResult(success=False, key=key, error=QUOTA_EXCEEDED)
        except StorageError as e:
            logger.error("Error writing %s to storage: %s", key, e)
            return StoreResult(success=False, key=key, error=STORAGE)
        return StoreResult(success=True, key=key)

    def remove(self, key: str) -> StoreResult:
        self._slot(key)
        try:
            self.backend.remove_item(key, self.origin)
        except StorageError as e:
            logger.error("Error removing %s from storage: %s", key, e)
            return StoreResult(success=False, key=key, error=STORAGE)
        return StoreResult(success=True, key=key)

    def export_all(self) -> Dict[str, Any]:
        """Map every synced registry key to its current value."""
        return {slot.key: self.get(slot.key) for slot in registry.iter_slots(synced_only=True)}

    def import_all(self, snapshot_map: Mapping[str, Any], merge_mode: bool) -> SyncResult:
        """
        Write every key present in ``snapshot_map``.

        Replace mode overwrites unconditionally; merge mode combines the local
        and incoming values per the slot's merge rule first. Keys outside the
        registry and device-local keys are skipped. A failing key is recorded
        and the remaining keys are still attempted.
        """
        result = SyncResult(success=True)
        for key, incoming in snapshot_map.items():
            slot = registry.get_slot(key)
            if slot is None or not slot.synced:
                result.skipped_keys.append(key)
                continue
            try:
                validate_value(slot, incoming)
            except MalformedSnapshotError as e:
                logger.warning("Refusing malformed value for %s: %s", key, e.reason)
                result.failed_keys[key] = e.reason
                continue

            value = merge_value(slot, self.get(key), incoming) if merge_mode else incoming
            written = self.set(key, value)
            if written:
                result.written_keys.append(key)
            else:
                result.failed_keys[key] = written.error or STORAGE

        if result.failed_keys:
            result.success = False
            result.message = "Import failed for: " + ", ".join(sorted(result.failed_keys))
        else:
            result.message = f"Imported {len(result.written_keys)} keys"
        return result

    def clear(self) -> SyncResult:
        """Remove every registry key, resetting the store to defaults."""
        result = SyncResult(success=True, message="Store cleared")
        for key in registry.all_keys():
            removed = self.remove(key)
            if not removed:
                result.failed_keys[key] = removed.error or STORAGE
        if result.failed_keys:
            result.success = False
            result.message = "Reset incomplete"
        return result
