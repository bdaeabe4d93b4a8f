# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command-line adapter.

Translates flags into BackupJob / RestoreJob values through the builder,
runs them, and maps results to exit codes:

    0  succeeded or no_change
    1  failed
    2  invalid arguments or configuration
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

import structlog

from snapvault import __version__
from snapvault.backup.manager import list_artifacts
from snapvault.backup.restore import execute_restore
from snapvault.builder import create_backup_job, create_restore_job
from snapvault.config import CipherMethod, Compression
from snapvault.core import execute_backup
from snapvault.exceptions import ConfigurationError
from snapvault.progress import ProgressEvent

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def configure_logging(level: str) -> None:
    """Route structlog output through a level filter."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigurationError(f"Unknown log level: {level!r}")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _yes_no(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("yes", "y", "true", "1"):
        return True
    if lowered in ("no", "n", "false", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected yes or no, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapvault",
        description="Archive, compress and encrypt directory backups.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=os.getenv("SNAPVAULT_LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Print each completed stage.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    backup = sub.add_parser("backup", help="Create an archive of a directory.")
    backup.add_argument("-s", "--source", required=True, help="Directory to back up.")
    backup.add_argument("-d", "--destination", required=True, help="Directory receiving the archive.")
    backup.add_argument("-n", "--name", required=True, help="Archive base name.")
    backup.add_argument(
        "-c",
        "--compression",
        default="gzip",
        choices=[c.value for c in Compression],
        help="Container codec (default gzip).",
    )
    backup.add_argument(
        "-e",
        "--encrypt",
        type=_yes_no,
        default=False,
        metavar="yes|no",
        help="Encrypt the finished archive (default no).",
    )
    backup.add_argument(
        "-m",
        "--method",
        default=CipherMethod.AES_256_CBC.value,
        help="Encryption method: AES-256-CBC or ChaCha20 (default AES-256-CBC).",
    )
    backup.add_argument(
        "-k",
        "--key",
        default=os.getenv("SNAPVAULT_KEY"),
        help="Encryption key (default: $SNAPVAULT_KEY).",
    )
    backup.add_argument(
        "-i",
        "--incremental",
        action="store_true",
        help="Archive only files changed since the last checkpoint.",
    )
    backup.add_argument("--description", default="", help="Free-text description.")

    restore = sub.add_parser("restore", help="Restore an archive into a directory.")
    restore.add_argument("-f", "--file", required=True, help="Archive to restore.")
    restore.add_argument("-r", "--restore-to", required=True, help="Directory receiving the files.")
    restore.add_argument(
        "-k",
        "--key",
        default=os.getenv("SNAPVAULT_KEY"),
        help="Decryption key (default: $SNAPVAULT_KEY).",
    )

    listing = sub.add_parser("list", help="List finished archives in a destination.")
    listing.add_argument("-d", "--destination", required=True, help="Destination directory.")
    listing.add_argument("-n", "--name", default=None, help="Only archives with this base name.")

    return parser


def _print_progress(event: ProgressEvent) -> None:
    detail = " ".join(f"{k}={v}" for k, v in event.detail.items())
    print(f"[{event.stage.value}] {detail}".rstrip(), file=sys.stderr)


def run_backup_command(args: argparse.Namespace) -> int:
    job = create_backup_job(
        args.source,
        args.destination,
        args.name,
        compression=args.compression,
        encryption_method=args.method if args.encrypt else None,
        key=args.key,
        incremental=args.incremental,
        description=args.description,
    )
    result = execute_backup(job, _print_progress if args.progress else None)

    if result.succeeded:
        print(result.artifact_path)
        return EXIT_OK
    if result.no_change:
        print("No changes since the last checkpoint; nothing archived.")
        return EXIT_OK

    print(f"Backup failed ({result.error_kind}): {result.error_message}", file=sys.stderr)
    return EXIT_FAILED


def run_restore_command(args: argparse.Namespace) -> int:
    job = create_restore_job(args.file, args.restore_to, key=args.key)
    result = execute_restore(job, _print_progress if args.progress else None)

    if result.succeeded:
        print(f"Restored {result.restored_count} entries into {result.destination}")
        return EXIT_OK

    print(f"Restore failed ({result.error_kind}): {result.error_message}", file=sys.stderr)
    return EXIT_FAILED


def run_list_command(args: argparse.Namespace) -> int:
    for path in list_artifacts(args.destination, args.name):
        print(path)
    return EXIT_OK


COMMANDS = {
    "backup": run_backup_command,
    "restore": run_restore_command,
    "list": run_list_command,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse exits 0 for --help/--version and 2 for usage errors
        return exc.code if isinstance(exc.code, int) else EXIT_USAGE

    try:
        configure_logging(args.log_level)
        return COMMANDS[args.command](args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
