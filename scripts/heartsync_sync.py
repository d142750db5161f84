"""
Command-line export/import of HeartSync snapshots.

Useful for backups and for syncing without the TUI:

    uv run scripts/heartsync_sync.py export --out backup
    uv run scripts/heartsync_sync.py preview backup.heartsync
    uv run scripts/heartsync_sync.py import backup.heartsync --merge

The pairing code is read from ``--passphrase``, then ``HEARTSYNC_PASSPHRASE``,
and finally prompted for.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from typing import List, Optional

from heartsync.core.exceptions import ValidationError
from heartsync.frontend.cli.context import AppContext, build_context
from heartsync.frontend.cli.logging_config import configure_logging
from heartsync.sync.exporter import load_package, save_package


def _passphrase(args: argparse.Namespace) -> str:
    return args.passphrase or os.getenv("HEARTSYNC_PASSPHRASE") or getpass.getpass("Pairing code: ")


def run_export(ctx: AppContext, passphrase: str, out: Optional[str]) -> int:
    try:
        package = ctx.exporter.export(passphrase)
    except ValidationError as e:
        print(f"Export failed: {e}", file=sys.stderr)
        return 1
    if out:
        try:
            path = save_package(out, package)
        except OSError as e:
            print(f"Export failed: {e}", file=sys.stderr)
            return 1
        print(f"Saved encrypted snapshot to {path}")
    else:
        print(package)
    return 0


def run_preview(ctx: AppContext, passphrase: str, package_file: str) -> int:
    try:
        preview = ctx.importer.decrypt_and_preview(load_package(package_file), passphrase)
    except (ValidationError, OSError) as e:
        print(f"Preview failed: {e}", file=sys.stderr)
        return 1
    print(preview.message)
    if not preview.success:
        return 1
    print(f"Partners: {preview.partner1 or '-'} & {preview.partner2 or '-'}")
    print(f"Start date: {preview.start_date or '-'}")
    print(f"Exported at: {preview.exported_at or 'unknown'} (sync version {preview.sync_version})")
    for label, count in sorted(preview.counts.items()):
        print(f"  {label}: {count}")
    return 0


def run_import(
    ctx: AppContext,
    passphrase: str,
    package_file: str,
    merge: bool,
    allow_unknown_version: bool = False,
) -> int:
    try:
        result = ctx.importer.import_package(
            load_package(package_file),
            passphrase,
            merge_mode=merge,
            allow_unknown_version=allow_unknown_version,
        )
    except (ValidationError, OSError) as e:
        print(f"Import failed: {e}", file=sys.stderr)
        return 1
    print(result.message)
    for key, reason in result.failed_keys.items():
        print(f"  failed {key}: {reason}", file=sys.stderr)
    return 0 if result.success else 1


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export or import an encrypted HeartSync snapshot."
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to HeartSync SQLite database (default: $HEARTSYNC_DB or ~/.heartsync/heartsync.db)",
    )
    parser.add_argument(
        "--passphrase",
        default=None,
        help="Pairing code (default: $HEARTSYNC_PASSPHRASE, else prompt)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")

    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Encrypt the current data")
    export.add_argument(
        "--out",
        default=None,
        help="File to write (the .heartsync extension is added); prints to stdout if omitted",
    )

    preview = sub.add_parser("preview", help="Decrypt a package and summarise it without writing")
    preview.add_argument("file", help="Package file to read")

    imp = sub.add_parser("import", help="Decrypt a package and apply it")
    imp.add_argument("file", help="Package file to read")
    imp.add_argument(
        "--merge",
        action="store_true",
        help="Merge with local data instead of replacing it",
    )
    imp.add_argument(
        "--allow-unknown-version",
        action="store_true",
        help="Apply packages from an unrecognised sync version",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    ctx = build_context(db_path=args.db_path, watch=False)
    try:
        passphrase = _passphrase(args)
        if args.command == "export":
            return run_export(ctx, passphrase, args.out)
        if args.command == "preview":
            return run_preview(ctx, passphrase, args.file)
        return run_import(ctx, passphrase, args.file, args.merge, args.allow_unknown_version)
    finally:
        ctx.close()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
