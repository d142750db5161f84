"""
Snapshot importer / reconciler.

Import is two explicit steps so nothing is ever written silently:

    decrypt_and_preview(package, passphrase) -> ImportPreview   (no writes)
    commit(snapshot, merge_mode)             -> SyncResult      (writes)

Replace mode overwrites every key present in the snapshot; keys the snapshot
does not carry keep their local value. Merge mode keeps local personalisation
and unions record collections by id (see :mod:`heartsync.core.merge`).

The importer branches on the snapshot's ``syncVersion``:

- 1: current shape, applied as is
- 0: payloads from the first app release (short key names, no ``_meta``),
  mapped explicitly onto registry keys
- anything else: refused unless the caller passes ``allow_unknown_version``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping

from ..core.exceptions import (
    DecryptionError,
    MalformedSnapshotError,
    UnsupportedSnapshotVersionError,
    ValidationError,
)
from ..core.models import (
    META_KEY,
    SYNC_VERSION,
    ImportPreview,
    Snapshot,
    SnapshotMeta,
    SyncResult,
    utc_now_iso,
)
from ..core.registry import COLLECTION_LABELS, KEYS
from ..core.store import StoreAdapter
from ..security import codec

logger = logging.getLogger(__name__)

GENERIC_DECRYPT_FAILURE = "Wrong password or corrupt data"
LEGACY_SYNC_VERSION = 0

# first-release payload field -> registry key
LEGACY_FIELDS: Dict[str, str] = {
    "capsules": KEYS.CAPSULES,
    "goals": KEYS.GOALS,
    "journey": KEYS.JOURNEY,
    "voice": KEYS.VOICE_ENTRIES,
}
LEGACY_SETTINGS: Dict[str, str] = {
    "music": KEYS.BG_MUSIC,
    "notifications": KEYS.NOTIFICATIONS,
}


def _legacy_flag(raw: Any) -> Any:
    # first release exported raw localStorage strings for its settings
    if raw in ("true", "false"):
        return raw == "true"
    return raw


def parse_payload(payload: Any) -> Snapshot:
    """Turn a decrypted payload into a :class:`Snapshot` or raise MalformedSnapshotError."""
    if not isinstance(payload, dict):
        raise MalformedSnapshotError("<root>", "payload is not an object")
    if META_KEY in payload:
        return Snapshot.from_payload(payload)

    legacy_keys = set(LEGACY_FIELDS) | {"settings"}
    if payload and set(payload) <= legacy_keys:
        meta = SnapshotMeta(app_version="", exported_at="", sync_version=LEGACY_SYNC_VERSION)
        return Snapshot(payload, meta)
    raise MalformedSnapshotError(META_KEY, "metadata block missing")


def upgrade_legacy(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a version 0 payload onto registry keys."""
    upgraded: Dict[str, Any] = {}
    for field, key in LEGACY_FIELDS.items():
        if data.get(field) is not None:
            upgraded[key] = data[field]
    settings = data.get("settings")
    if isinstance(settings, dict):
        for field, key in LEGACY_SETTINGS.items():
            if settings.get(field) is not None:
                upgraded[key] = _legacy_flag(settings[field])
    return upgraded


class SnapshotImporter:
    def __init__(self, store: StoreAdapter):
        self.store = store

    def registry_data(self, snapshot: Snapshot, allow_unknown_version: bool = False) -> Dict[str, Any]:
        """Return the snapshot's data keyed by registry key, per its sync version."""
        version = snapshot.meta.sync_version
        if version == SYNC_VERSION:
            return dict(snapshot.data)
        if version == LEGACY_SYNC_VERSION:
            return upgrade_legacy(snapshot.data)
        if allow_unknown_version:
            logger.warning("Applying snapshot with unknown sync version %s on request", version)
            return dict(snapshot.data)
        raise UnsupportedSnapshotVersionError(version)

    def _decrypt(self, package: str, passphrase: str) -> Snapshot:
        if not passphrase or not package:
            raise ValidationError("Missing code or data block")
        payload = codec.decrypt(package, passphrase)
        if payload is None:
            raise DecryptionError(GENERIC_DECRYPT_FAILURE)
        return parse_payload(payload)

    def decrypt_and_preview(self, package: str, passphrase: str) -> ImportPreview:
        """
        Decrypt ``package`` and summarise it without writing anything.

        A wrong passphrase and a corrupt package produce the same generic
        failure message.
        """
        try:
            snapshot = self._decrypt(package, passphrase)
        except DecryptionError:
            return ImportPreview(success=False, message=GENERIC_DECRYPT_FAILURE)
        except MalformedSnapshotError as e:
            logger.warning("Decrypted payload has an unrecognised shape: %s", e)
            return ImportPreview(success=False, message="Unrecognised data format")

        version = snapshot.meta.sync_version
        try:
            data = self.registry_data(snapshot)
            message = "Ready to import"
        except UnsupportedSnapshotVersionError:
            data = dict(snapshot.data)
            message = (
                f"Data was exported by an unknown app version (sync version {version}); "
                "confirm explicitly to import it anyway"
            )

        counts = {
            label: len(data[key])
            for key, label in COLLECTION_LABELS.items()
            if isinstance(data.get(key), list)
        }
        return ImportPreview(
            success=True,
            message=message,
            snapshot=snapshot,
            counts=counts,
            partner1=str(data.get(KEYS.PARTNER_1) or ""),
            partner2=str(data.get(KEYS.PARTNER_2) or ""),
            start_date=str(data.get(KEYS.START_DATE) or ""),
            exported_at=snapshot.meta.exported_at,
            sync_version=version,
        )

    async def decrypt_and_preview_async(self, package: str, passphrase: str) -> ImportPreview:
        return await asyncio.to_thread(self.decrypt_and_preview, package, passphrase)

    def commit(
        self,
        snapshot: Snapshot,
        merge_mode: bool,
        allow_unknown_version: bool = False,
    ) -> SyncResult:
        """Apply a previewed snapshot to the store under the chosen policy."""
        try:
            data = self.registry_data(snapshot, allow_unknown_version=allow_unknown_version)
        except UnsupportedSnapshotVersionError as e:
            return SyncResult(success=False, message=str(e), failed_keys={META_KEY: str(e)})

        result = self.store.import_all(data, merge_mode)
        if result.written_keys:
            stamped = self.store.set(KEYS.LAST_SYNC, utc_now_iso())
            if not stamped:
                logger.warning("Could not record last sync time after import")

        mode = "merge" if merge_mode else "replace"
        logger.info(
            "Import (%s): %d written, %d failed, %d skipped",
            mode, len(result.written_keys), len(result.failed_keys), len(result.skipped_keys),
        )
        if result.success:
            result.message = "Sync complete"
        return result

    def import_package(
        self,
        package: str,
        passphrase: str,
        merge_mode: bool,
        allow_unknown_version: bool = False,
    ) -> SyncResult:
        """Decrypt and commit in one call. The store is untouched unless decryption succeeds."""
        preview = self.decrypt_and_preview(package, passphrase)
        if not preview.success:
            return SyncResult(success=False, message=preview.message)
        return self.commit(preview.snapshot, merge_mode, allow_unknown_version=allow_unknown_version)
