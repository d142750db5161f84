"""
Media blob store (photos, voice notes, profile pictures).

Structure Map for reference:
==============================
 - <media_root>/
      - audio_files/
          - index.json
          - {id}.blob
      - photo_files/
          - ...
      - profile_photos/
          - ...
==============================
Blobs are opaque bytes keyed by id. ``index.json`` keeps size, sha256 and
the time each blob was added. Media is not part of snapshot sync.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import StorageError

logger = logging.getLogger(__name__)

AUDIO_STORE = "audio_files"
PHOTO_STORE = "photo_files"
PROFILE_STORE = "profile_photos"

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class MediaStore:
    """File-backed key -> blob store for one media category."""

    def __init__(self, root: str | Path, store_name: str = PHOTO_STORE):
        self.root = Path(root).expanduser() / store_name
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def _index_path(self) -> Path:
        return self.root / "index.json"

    def _blob_path(self, blob_id: str) -> Path:
        # ids become file names; refuse anything that could escape the root
        if not isinstance(blob_id, str) or not _SAFE_ID.match(blob_id) or blob_id in (".", ".."):
            raise ValueError(f"Invalid media id: {blob_id!r}")
        return self.root / f"{blob_id}.blob"

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        if not self._index_path.exists():
            return {}
        try:
            with open(self._index_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):
            logger.warning("Media index at %s unreadable; rebuilding lazily", self._index_path)
            return {}

    def _save_index(self, index: Dict[str, Dict[str, Any]]) -> None:
        with open(self._index_path, "w", encoding="utf-8") as f:
            json.dump(index, f, ensure_ascii=False)

    def put(self, blob_id: str, blob: bytes, **info: Any) -> Dict[str, Any]:
        path = self._blob_path(blob_id)
        try:
            path.write_bytes(blob)
        except OSError as e:
            raise StorageError(f"Failed to store media {blob_id}: {e}")
        entry = {
            "size": len(blob),
            "sha256": hashlib.sha256(blob).hexdigest(),
            "added_at": datetime.now(timezone.utc).isoformat(),
        }
        entry.update(info)
        index = self._load_index()
        index[blob_id] = entry
        self._save_index(index)
        return entry

    def get(self, blob_id: str) -> Optional[bytes]:
        path = self._blob_path(blob_id)
        if not path.exists():
            return None
        return path.read_bytes()

    def info(self, blob_id: str) -> Optional[Dict[str, Any]]:
        return self._load_index().get(blob_id)

    def delete(self, blob_id: str) -> bool:
        path = self._blob_path(blob_id)
        if not path.exists():
            return False
        path.unlink()
        index = self._load_index()
        if index.pop(blob_id, None) is not None:
            self._save_index(index)
        return True

    def list(self) -> List[Tuple[str, bytes]]:
        return [(p.stem, p.read_bytes()) for p in sorted(self.root.glob("*.blob"))]

    def verify(self, blob_id: str) -> bool:
        blob = self.get(blob_id)
        entry = self.info(blob_id)
        if blob is None or entry is None:
            return False
        return hashlib.sha256(blob).hexdigest() == entry.get("sha256")
