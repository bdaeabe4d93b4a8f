# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Archive Manager - Build archive artifacts.

This module turns a source tree, or an explicit list of files from it,
into exactly one archive in the destination directory. One builder exists
per container format and is selected through a lookup table keyed by the
job's compression codec.
"""

import asyncio
import os
import tarfile
import zipfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

import structlog

from snapvault.config import (
    ENCRYPTED_SUFFIX,
    PARTIAL_SUFFIX,
    ArchiveFormat,
    Artifact,
    BackupJob,
    Compression,
)
from snapvault.errors import explain_artifact_exists
from snapvault.exceptions import ArchiveError

logger = structlog.get_logger()

# Single worker: stages of a job never overlap
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapvault-archive")

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
INCREMENTAL_INFIX = "_incremental"

# Entries are (absolute path on disk, name inside the archive)
ArchiveEntries = List[Tuple[Path, str]]
BuildFunc = Callable[[Path, ArchiveEntries], None]


def artifact_name(job: BackupJob, incremental: bool) -> str:
    """
    Build the archive file name for a job.

    Format: ``<name>_<YYYYmmdd_HHMMSS>[_incremental].<ext>``

    Args:
        job: The backup job
        incremental: True when an explicit change list is archived

    Returns:
        File name (without directory)
    """
    stamp = job.created_at.strftime(TIMESTAMP_FORMAT)
    infix = INCREMENTAL_INFIX if incremental else ""
    return f"{job.name}_{stamp}{infix}{job.compression.archive_format.suffix}"


def collect_tree_entries(source: Path, exclude: Path | None = None) -> ArchiveEntries:
    """
    List every directory and regular file under ``source``.

    Directories are included so that empty ones survive a round trip.
    Names are relative to ``source`` and use forward slashes.
    """
    root = Path(source).resolve()
    skip = Path(exclude).resolve() if exclude is not None else None
    entries: ArchiveEntries = []

    def _on_error(err: OSError) -> None:
        raise ArchiveError(
            f"Cannot read source tree: {err}",
            details={"stage": "archiving", "path": err.filename or str(root)},
        )

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current = Path(dirpath)
        # Symlinked directories are not followed and not stored
        dirnames[:] = [
            d for d in dirnames
            if not (current / d).is_symlink() and (current / d) != skip
        ]
        dirnames.sort()

        for dirname in dirnames:
            path = current / dirname
            entries.append((path, path.relative_to(root).as_posix()))

        for filename in sorted(filenames):
            path = current / filename
            if path.is_symlink() or not path.is_file():
                continue
            entries.append((path, path.relative_to(root).as_posix()))

    return entries


def collect_file_entries(source: Path, files: Iterable[Path]) -> ArchiveEntries:
    """
    Map an explicit file list to archive entries relative to ``source``.

    Raises:
        ArchiveError: If a file lies outside the source tree
    """
    root = Path(source).resolve()
    entries: ArchiveEntries = []

    for file_path in files:
        path = Path(file_path).resolve()
        try:
            arcname = path.relative_to(root).as_posix()
        except ValueError:
            raise ArchiveError(
                f"File is outside the source tree: {path}",
                details={"stage": "archiving", "path": str(path), "source": str(root)},
            )
        entries.append((path, arcname))

    return entries


def _build_tar(mode: str) -> BuildFunc:
    def build(target: Path, entries: ArchiveEntries) -> None:
        with tarfile.open(target, mode, format=tarfile.PAX_FORMAT) as tar:
            for path, arcname in entries:
                info = tar.gettarinfo(path, arcname=arcname)
                if info.isdir():
                    tar.addfile(info)
                    continue
                # Every path to a shared inode carries its own bytes
                if info.islnk():
                    info.type = tarfile.REGTYPE
                    info.linkname = ""
                    info.size = path.stat().st_size
                with path.open("rb") as f:
                    tar.addfile(info, f)

    return build


def _build_zip(target: Path, entries: ArchiveEntries) -> None:
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path, arcname in entries:
            if path.is_dir():
                zf.write(path, arcname=arcname + "/")
            else:
                zf.write(path, arcname=arcname)


# Lookup table: one builder per container codec
ARCHIVE_BUILDERS: Dict[Compression, BuildFunc] = {
    Compression.NONE: _build_tar("w"),
    Compression.TAR: _build_tar("w"),
    Compression.GZIP: _build_tar("w:gz"),
    Compression.BZIP2: _build_tar("w:bz2"),
    Compression.ZIP: _build_zip,
}


def build_archive(
    job: BackupJob,
    files: Sequence[Path] | None = None,
) -> Artifact:
    """
    Produce one archive artifact for a job.

    The archive is written under a ``.part`` name and renamed into place
    only when complete, so a failed build never leaves something that
    looks like a valid artifact.

    Args:
        job: The backup job
        files: Explicit file list (incremental mode); None archives the tree

    Returns:
        Plaintext Artifact in the job's destination

    Raises:
        ArchiveError: If the archive cannot be produced
    """
    builder = ARCHIVE_BUILDERS.get(job.compression)
    if builder is None:
        raise ArchiveError(
            f"No archive builder for codec: {job.compression}",
            details={"stage": "archiving", "compression": str(job.compression)},
        )

    incremental = job.incremental and files is not None
    final_path = Path(job.destination) / artifact_name(job, incremental)
    temp_path = final_path.with_name(final_path.name + PARTIAL_SUFFIX)

    if final_path.exists():
        raise ArchiveError(
            explain_artifact_exists(final_path),
            details={"stage": "archiving", "path": str(final_path)},
        )

    try:
        if files is None:
            entries = collect_tree_entries(job.source, exclude=job.destination)
        else:
            entries = collect_file_entries(job.source, files)

        builder(temp_path, entries)
        temp_path.rename(final_path)

    except ArchiveError:
        temp_path.unlink(missing_ok=True)
        raise
    except Exception as e:
        temp_path.unlink(missing_ok=True)
        raise ArchiveError(
            f"Failed to create archive: {e}",
            details={"stage": "archiving", "path": str(final_path)},
        )

    logger.info(
        "archive_created",
        path=str(final_path),
        format=job.compression.archive_format.value,
        entries=len(entries),
        incremental=incremental,
        size=final_path.stat().st_size,
    )

    return Artifact(path=final_path, format=job.compression.archive_format)


async def create_archive(
    job: BackupJob,
    files: Sequence[Path] | None = None,
) -> Artifact:
    """
    Async wrapper around build_archive().

    Archiving is blocking I/O and CPU work, so it runs in the module
    thread pool while the caller awaits it.
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(_executor, build_archive, job, files)


def list_artifacts(destination: Path, name: str | None = None) -> List[Path]:
    """
    List finished artifacts in a destination directory.

    Partial files are never listed.

    Args:
        destination: Destination directory
        name: Restrict to artifacts with this base name

    Returns:
        Sorted list of artifact paths
    """
    destination = Path(destination)
    if not destination.is_dir():
        return []

    found: List[Path] = []
    for path in destination.iterdir():
        if not path.is_file() or path.name.endswith(PARTIAL_SUFFIX):
            continue
        plain_name = path.name
        if plain_name.endswith(ENCRYPTED_SUFFIX):
            plain_name = plain_name[: -len(ENCRYPTED_SUFFIX)]
        if ArchiveFormat.from_path(plain_name) is None:
            continue
        if name is not None and not plain_name.startswith(f"{name}_"):
            continue
        found.append(path)

    return sorted(found)
