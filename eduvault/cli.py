# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault command line.

Usage:
    eduvault [--data-dir DIR] create [--media]
    eduvault [--data-dir DIR] list [--kind auto|manual|all]
    eduvault [--data-dir DIR] restore <filename> [--kind K] [--no-apply] [--target DIR]
    eduvault [--data-dir DIR] cleanup [--kind K] [--keep N]
    eduvault [--data-dir DIR] stats

Configuration comes from EDUVAULT_* environment variables. Collections are
read from and restored to the local-<name>.json files in --data-dir.
Exit status is 0 on success and 1 on failure.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

import structlog

from eduvault.config import EngineConfig
from eduvault.core import BackupEngine
from eduvault.env import create_config_from_env
from eduvault.exceptions import EduVaultError
from eduvault.source import JsonFileApplier, JsonFileSnapshotSource


def _configure_logging(verbose: bool) -> None:
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eduvault",
        description="Create, list, restore and prune chat platform backups",
    )
    parser.add_argument(
        "--data-dir",
        default=".",
        help="Directory holding the local-<collection>.json files (default: .)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    commands = parser.add_subparsers(dest="command")

    create = commands.add_parser("create", help="Create a manual backup")
    create.add_argument("--media", action="store_true", help="Also back up the media folders")

    listing = commands.add_parser("list", help="List backups, newest first")
    listing.add_argument("--kind", default="all", choices=["auto", "manual", "all"])

    restore = commands.add_parser("restore", help="Restore a backup by filename")
    restore.add_argument("filename", nargs="?", help="Backup filename")
    restore.add_argument("--kind", choices=["auto", "manual"], help="Only look in this kind")
    restore.add_argument(
        "--no-apply",
        action="store_true",
        help="Validate and report only; do not overwrite live data",
    )
    restore.add_argument(
        "--target",
        help="Live directory for media backups (default: EDUVAULT_LIVE_ROOT, else .)",
    )

    cleanup = commands.add_parser("cleanup", help="Delete backups beyond the retention count")
    cleanup.add_argument("--kind", default="all", choices=["auto", "manual", "all"])
    cleanup.add_argument("--keep", type=int, help="Backups to keep per kind")

    commands.add_parser("stats", help="Show backup storage statistics")

    return parser


async def _create(engine: BackupEngine, args: argparse.Namespace) -> int:
    result = await engine.create_backup(kind="manual")
    if not result.success:
        print(f"Backup failed: {result.error}")
        return 1

    print(f"Backup created: {result.filename}")
    print(f"  Documents: {result.statistics['totalDocuments']}")
    print(f"  Size: {_format_size(result.size_bytes)}")

    if args.media:
        media = await engine.create_media_backup(kind="manual")
        if not media.success:
            print(f"Media backup failed: {media.error}")
            return 1
        print(f"Media backup created: {media.filename}")
        print(f"  Size: {_format_size(media.size_bytes)}")

    return 0


def _list(engine: BackupEngine, args: argparse.Namespace) -> int:
    backups = engine.list_backups(args.kind)
    if not backups:
        print("No backups found")
        return 0

    print(f"Backups ({len(backups)}):")
    for backup in backups:
        created = backup.created_at.isoformat() if backup.created_at else "unknown"
        print(
            f"  {backup.filename}  {backup.kind.value:<6}  "
            f"{_format_size(backup.size_bytes):>10}  {created}"
        )
    return 0


async def _restore(engine: BackupEngine, args: argparse.Namespace) -> int:
    if not args.filename:
        print("Usage: eduvault restore <filename>")
        return 1

    result = await engine.restore_backup(
        args.filename,
        kind=args.kind,
        target_dir=args.target,
        apply=not args.no_apply,
    )
    if not result.success:
        print(f"Restore failed: {result.error}")
        return 1

    print(f"Restored: {result.filename}")
    if result.metadata:
        print(f"  Created: {result.metadata.get('timestamp')}")
        print(f"  Type: {result.metadata.get('type')}")
    if result.statistics:
        print(f"  Documents: {result.statistics.get('totalDocuments')}")
    if result.restored_entries:
        print(f"  Entries: {', '.join(result.restored_entries)}")
    if args.no_apply:
        print("  Live data left unchanged (--no-apply)")
    return 0


async def _cleanup(engine: BackupEngine, args: argparse.Namespace) -> int:
    if args.keep is not None and args.keep < 0:
        print("--keep must be >= 0")
        return 1
    deleted = await engine.cleanup_old_backups(args.kind, args.keep)
    print(f"Deleted {deleted} old backup(s)")
    return 0


def _stats(engine: BackupEngine) -> int:
    stats = engine.get_backup_stats()
    if stats is None:
        print("Failed to read backup statistics")
        return 1

    print(f"Total backups: {stats['total']} ({stats['auto']} auto, {stats['manual']} manual)")
    print(f"Envelope / media: {stats['envelope']} / {stats['tree']}")
    print(f"Total size: {_format_size(stats['total_size'])}")
    print(f"Oldest: {stats['oldest'] or '-'}")
    print(f"Newest: {stats['newest'] or '-'}")
    return 0


async def run(args: argparse.Namespace, config: EngineConfig) -> int:
    data_dir = Path(args.data_dir)
    engine = BackupEngine(
        config,
        source=JsonFileSnapshotSource(data_dir),
        applier=JsonFileApplier(data_dir),
    )

    if args.command == "create":
        return await _create(engine, args)
    if args.command == "list":
        return _list(engine, args)
    if args.command == "restore":
        return await _restore(engine, args)
    if args.command == "cleanup":
        return await _cleanup(engine, args)
    return _stats(engine)


def main(argv: List[str] | None = None) -> int:
    """CLI entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    _configure_logging(args.verbose)

    try:
        config = create_config_from_env()
    except EduVaultError as e:
        print(f"Configuration error: {e}")
        return 1

    return asyncio.run(run(args, config))


if __name__ == "__main__":
    sys.exit(main())
