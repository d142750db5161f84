"""Encrypted snapshot export/import and cross-context propagation."""

from .exporter import (
    MIN_PASSPHRASE_LENGTH,
    PACKAGE_EXTENSION,
    SnapshotExporter,
    load_package,
    save_package,
    validate_passphrase,
)
from .importer import GENERIC_DECRYPT_FAILURE, SnapshotImporter, parse_payload
from .propagator import (
    ChangeFeed,
    CrossTabPropagator,
    MemoryChangeFeed,
    SqliteChangeFeed,
)

__all__ = [
    "MIN_PASSPHRASE_LENGTH",
    "PACKAGE_EXTENSION",
    "SnapshotExporter",
    "load_package",
    "save_package",
    "validate_passphrase",
    "GENERIC_DECRYPT_FAILURE",
    "SnapshotImporter",
    "parse_payload",
    "ChangeFeed",
    "CrossTabPropagator",
    "MemoryChangeFeed",
    "SqliteChangeFeed",
]
