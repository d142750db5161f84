"""
Base data models for snapshots and operation results
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import MalformedSnapshotError

APP_VERSION = "1.4.0"
# Bumped whenever the snapshot payload shape changes
SYNC_VERSION = 1
META_KEY = "_meta"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoreResult:
    """Outcome of a single adapter write."""

    success: bool
    key: str
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


@dataclass
class SyncResult:
    """Outcome of a batch operation (import, export)."""

    success: bool
    message: str = ""
    failed_keys: Dict[str, str] = field(default_factory=dict)
    written_keys: List[str] = field(default_factory=list)
    skipped_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "failedKeys": dict(self.failed_keys),
            "writtenKeys": list(self.written_keys),
            "skippedKeys": list(self.skipped_keys),
        }


@dataclass(frozen=True)
class SnapshotMeta:
    app_version: str
    exported_at: str
    sync_version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appVersion": self.app_version,
            "exportedAt": self.exported_at,
            "syncVersion": self.sync_version,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "SnapshotMeta":
        if not isinstance(raw, dict):
            raise MalformedSnapshotError(META_KEY, "metadata block missing or not an object")
        version = raw.get("syncVersion")
        # bool is an int subclass; reject it explicitly
        if not isinstance(version, int) or isinstance(version, bool):
            raise MalformedSnapshotError(META_KEY, "syncVersion must be an integer")
        return cls(
            app_version=str(raw.get("appVersion", "")),
            exported_at=str(raw.get("exportedAt", "")),
            sync_version=version,
        )


class Snapshot:
    """
    Immutable point-in-time capture of every synced registry key.

    ``data`` is exposed as a read-only mapping over a private deep copy, so
    mutating the source dict after construction does not affect the snapshot.
    """

    __slots__ = ("_data", "_meta")

    def __init__(self, data: Mapping[str, Any], meta: SnapshotMeta):
        object.__setattr__(self, "_data", copy.deepcopy(dict(data)))
        object.__setattr__(self, "_meta", meta)

    def __setattr__(self, name, value):
        raise AttributeError("Snapshot is immutable")

    @property
    def data(self) -> Mapping[str, Any]:
        return MappingProxyType(self._data)

    @property
    def meta(self) -> SnapshotMeta:
        return self._meta

    def __eq__(self, other) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return self._data == other._data and self._meta == other._meta

    def __repr__(self) -> str:
        return f"Snapshot(keys={len(self._data)}, meta={self._meta!r})"

    @classmethod
    def build(
        cls,
        data: Mapping[str, Any],
        app_version: str = APP_VERSION,
        exported_at: Optional[str] = None,
    ) -> "Snapshot":
        meta = SnapshotMeta(
            app_version=app_version,
            exported_at=exported_at or utc_now_iso(),
            sync_version=SYNC_VERSION,
        )
        return cls(data, meta)

    def to_payload(self) -> Dict[str, Any]:
        """Return the plaintext JSON shape: registry keys plus ``_meta``."""
        payload = copy.deepcopy(self._data)
        payload[META_KEY] = self._meta.to_dict()
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> "Snapshot":
        if not isinstance(payload, dict):
            raise MalformedSnapshotError("<root>", "payload is not an object")
        meta = SnapshotMeta.from_dict(payload.get(META_KEY))
        data = {k: v for k, v in payload.items() if k != META_KEY}
        return cls(data, meta)


@dataclass
class ImportPreview:
    """What the user sees before committing an import. Nothing is written yet."""

    success: bool
    message: str = ""
    snapshot: Optional[Snapshot] = None
    counts: Dict[str, int] = field(default_factory=dict)
    partner1: str = ""
    partner2: str = ""
    start_date: str = ""
    exported_at: str = ""
    sync_version: Optional[int] = None
