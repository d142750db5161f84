"""
Snapshot exporter.

    store.export_all() -> Snapshot (+ _meta) -> codec.encrypt -> package string

Every export draws a fresh salt and nonce, so two exports of identical data
never produce the same package.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ..core.exceptions import ValidationError
from ..core.models import APP_VERSION, Snapshot, utc_now_iso
from ..core.registry import KEYS
from ..core.store import StoreAdapter
from ..security import codec

logger = logging.getLogger(__name__)

MIN_PASSPHRASE_LENGTH = 6
PACKAGE_EXTENSION = ".heartsync"


def validate_passphrase(passphrase: str) -> None:
    """Raise :class:`ValidationError` unless the passphrase meets the policy."""
    if not passphrase:
        raise ValidationError("Please set a pairing code first")
    if len(passphrase) < MIN_PASSPHRASE_LENGTH:
        raise ValidationError(f"Code too short (min {MIN_PASSPHRASE_LENGTH} chars)")


class SnapshotExporter:
    def __init__(self, store: StoreAdapter, app_version: str = APP_VERSION):
        self.store = store
        self.app_version = app_version

    def build_snapshot(self) -> Snapshot:
        data = self.store.export_all()
        if not data:
            raise ValidationError("Nothing to export")
        return Snapshot.build(data, app_version=self.app_version)

    def export(self, passphrase: str) -> str:
        """
        Encrypt a full snapshot of the store under ``passphrase``.

        Raises :class:`ValidationError` before any crypto work if the
        passphrase is missing or too short. On success the sync timestamp is
        updated and the package string returned.
        """
        validate_passphrase(passphrase)
        snapshot = self.build_snapshot()
        package = codec.encrypt(snapshot.to_payload(), passphrase)

        stamped = self.store.set(KEYS.LAST_SYNC, utc_now_iso())
        if not stamped:
            # the package is still valid; only the local bookkeeping failed
            logger.warning("Could not record last sync time after export")
        logger.info("Exported snapshot with %d keys", len(snapshot.data))
        return package

    async def export_async(self, passphrase: str) -> str:
        """:meth:`export` run in a worker thread."""
        validate_passphrase(passphrase)
        return await asyncio.to_thread(self.export, passphrase)


def save_package(path: str | Path, package: str) -> Path:
    """Write a package string to a file, adding the package extension if missing."""
    target = Path(path).expanduser()
    if target.suffix != PACKAGE_EXTENSION:
        target = target.with_name(target.name + PACKAGE_EXTENSION)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(package, encoding="utf-8")
    return target


def load_package(path: str | Path) -> str:
    return Path(path).expanduser().read_text(encoding="utf-8").strip()
