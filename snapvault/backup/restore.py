# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Restore Manager - Reconstitute files from an archive artifact.

A restore runs strictly in order:
1. Validate the archive path
2. Decrypt into a private temporary directory (encrypted artifacts only)
3. Detect the archive format from its suffix
4. Extract into the destination directory

A failure at any step ends the job; nothing is written to the destination
before the format is known.
"""

import asyncio
import shutil
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List

import structlog
from ulid import ULID

from snapvault.config import ENCRYPTED_SUFFIX, ArchiveFormat, RestoreJob
from snapvault.errors import explain_missing_decryption_key
from snapvault.exceptions import (
    DecryptionError,
    ExtractionError,
    SnapVaultError,
    UnsupportedFormatError,
    ValidationError,
)
from snapvault.progress import ProgressCallback, Stage, emit
from snapvault.vault.cipher import decrypt_artifact

logger = structlog.get_logger()


class RestoreStatus(str, Enum):
    """Terminal outcome of a restore job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RestoreResult:
    """Result of a restore job."""

    job_id: str  # ULID
    status: RestoreStatus
    archive: Path
    destination: Path
    restored_count: int = 0
    error_kind: str | None = None
    error_message: str | None = None
    error_details: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == RestoreStatus.SUCCEEDED


# ============================================================================
# Extraction strategies
# ============================================================================


def _check_member_name(name: str, archive: Path) -> None:
    """Refuse absolute paths and parent-directory components."""
    pure = PurePosixPath(name.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        raise ExtractionError(
            f"Unsafe path in archive: {name}",
            details={"stage": "extracting", "path": str(archive), "member": name},
        )


def _extract_tar(mode: str) -> Callable[[Path, Path], int]:
    def extract(archive: Path, destination: Path) -> int:
        with tarfile.open(archive, mode) as tar:
            members = tar.getmembers()
            for member in members:
                _check_member_name(member.name, archive)
                if not (member.isfile() or member.isdir()):
                    raise ExtractionError(
                        f"Unsupported entry type in archive: {member.name}",
                        details={
                            "stage": "extracting",
                            "path": str(archive),
                            "member": member.name,
                        },
                    )
            tar.extractall(destination, members=members, filter="data")
        return len(members)

    return extract


def _extract_zip(archive: Path, destination: Path) -> int:
    with zipfile.ZipFile(archive) as zf:
        names = zf.namelist()
        for name in names:
            _check_member_name(name, archive)
        zf.extractall(destination)
    return len(names)


# Lookup table: one extractor per detected format
EXTRACTORS: Dict[ArchiveFormat, Callable[[Path, Path], int]] = {
    ArchiveFormat.TAR: _extract_tar("r:"),
    ArchiveFormat.TAR_GZ: _extract_tar("r:gz"),
    ArchiveFormat.TAR_BZ2: _extract_tar("r:bz2"),
    ArchiveFormat.ZIP: _extract_zip,
}


def detect_format(path: Path) -> ArchiveFormat:
    """
    Detect the archive format of a plaintext artifact.

    Raises:
        UnsupportedFormatError: If the suffix matches no extractor
    """
    fmt = ArchiveFormat.from_path(path)
    if fmt is None or fmt not in EXTRACTORS:
        raise UnsupportedFormatError(
            f"Unrecognized archive format: {Path(path).name}",
            details={
                "stage": "detecting_format",
                "path": str(path),
                "supported": [f.suffix for f in EXTRACTORS],
            },
        )
    return fmt


def extract_archive(archive: Path, fmt: ArchiveFormat, destination: Path) -> int:
    """
    Extract an archive into ``destination``, preserving relative paths.

    Returns:
        Number of entries extracted

    Raises:
        ExtractionError: On a corrupt archive or unwritable destination
    """
    try:
        destination.mkdir(parents=True, exist_ok=True)
        return EXTRACTORS[fmt](archive, destination)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(
            f"Failed to extract archive: {e}",
            details={
                "stage": "extracting",
                "path": str(archive),
                "destination": str(destination),
            },
        )


# ============================================================================
# Orchestration
# ============================================================================

# Error kind used when a step fails with an unexpected exception. Failures
# around decryption that are not key or integrity problems are I/O.
_STAGE_ERRORS = {
    "validating": ValidationError,
    "decrypting": ExtractionError,
    "detecting_format": UnsupportedFormatError,
    "extracting": ExtractionError,
}


def _validate_restore(job: RestoreJob) -> None:
    if not job.archive.is_file():
        raise ValidationError(
            f"Archive not found: {job.archive}",
            details={"stage": "validating", "path": str(job.archive)},
        )
    if job.destination.exists() and not job.destination.is_dir():
        raise ValidationError(
            f"Restore destination is not a directory: {job.destination}",
            details={"stage": "validating", "path": str(job.destination)},
        )


async def run_restore(
    job: RestoreJob,
    progress: ProgressCallback | None = None,
) -> RestoreResult:
    """
    Execute a restore job to a terminal outcome.

    This is the main entry point for restores. Errors never escape; they
    are reported in the result with their kind and context.

    Args:
        job: The restore job
        progress: Optional callback receiving stage-completion events

    Returns:
        RestoreResult (succeeded or failed)
    """
    job_id = str(ULID())
    start_time = datetime.now(UTC)
    temp_dir: Path | None = None
    stage = "validating"

    logger.info(
        "restore_started",
        job_id=job_id,
        archive=str(job.archive),
        destination=str(job.destination),
    )

    try:
        _validate_restore(job)
        emit(progress, job_id, Stage.VALIDATE, archive=str(job.archive))

        plaintext_path = job.archive
        if job.archive.name.endswith(ENCRYPTED_SUFFIX):
            stage = "decrypting"
            if not job.key:
                raise DecryptionError(
                    explain_missing_decryption_key(),
                    details={"stage": "decrypting", "path": str(job.archive)},
                )
            temp_dir = Path(tempfile.mkdtemp(prefix="snapvault-restore-"))
            plaintext_path = await decrypt_artifact(job.archive, job.key, temp_dir)
            emit(progress, job_id, Stage.DECRYPT, path=str(job.archive))

        stage = "detecting_format"
        fmt = detect_format(plaintext_path)
        emit(progress, job_id, Stage.DETECT_FORMAT, format=fmt.value)

        stage = "extracting"
        loop = asyncio.get_event_loop()
        restored = await loop.run_in_executor(
            None, extract_archive, plaintext_path, fmt, job.destination
        )
        emit(progress, job_id, Stage.EXTRACT, entries=restored)

    except Exception as exc:
        if isinstance(exc, SnapVaultError):
            err = exc
        else:
            err = _STAGE_ERRORS[stage](
                f"Unexpected error: {exc}",
                details={"path": str(job.archive)},
            )
        details = {"stage": stage, **err.details}

        duration = (datetime.now(UTC) - start_time).total_seconds()
        logger.error(
            "restore_failed",
            job_id=job_id,
            error_kind=err.kind,
            error=err.message,
            stage=details["stage"],
            path=details.get("path"),
        )
        return RestoreResult(
            job_id=job_id,
            status=RestoreStatus.FAILED,
            archive=job.archive,
            destination=job.destination,
            error_kind=err.kind,
            error_message=err.message,
            error_details=details,
            duration_seconds=duration,
        )
    finally:
        if temp_dir is not None:
            shutil.rmtree(temp_dir, ignore_errors=True)

    duration = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "restore_completed",
        job_id=job_id,
        destination=str(job.destination),
        restored=restored,
        duration=duration,
    )

    return RestoreResult(
        job_id=job_id,
        status=RestoreStatus.SUCCEEDED,
        archive=job.archive,
        destination=job.destination,
        restored_count=restored,
        duration_seconds=duration,
    )


def execute_restore(
    job: RestoreJob,
    progress: ProgressCallback | None = None,
) -> RestoreResult:
    """
    Synchronous entry point: run a restore job on a private event loop.
    """
    return asyncio.run(run_restore(job, progress))


def list_archive_members(archive: Path) -> List[str]:
    """
    List entry names of a plaintext archive without extracting it.

    Raises:
        UnsupportedFormatError: If the format is not recognized
        ExtractionError: If the archive cannot be read
    """
    fmt = detect_format(archive)
    try:
        if fmt is ArchiveFormat.ZIP:
            with zipfile.ZipFile(archive) as zf:
                return zf.namelist()
        with tarfile.open(archive, "r:*") as tar:
            return tar.getnames()
    except Exception as e:
        raise ExtractionError(
            f"Failed to read archive: {e}",
            details={"stage": "extracting", "path": str(archive)},
        )
