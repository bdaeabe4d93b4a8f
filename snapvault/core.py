# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Core - Backup orchestration.

This module sequences one backup job through its stages:

    validating -> detecting_changes -> archiving -> encrypting
               -> updating_checkpoint -> succeeded

with the terminal alternates ``no_change`` and ``failed``. Stages run
strictly one after another; none is retried and a failed job is never
resumed. Callers re-run the whole job instead.
"""

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

import structlog
from ulid import ULID

from snapvault.backup.manager import create_archive
from snapvault.changeset import detect_changes_async
from snapvault.config import Artifact, BackupJob
from snapvault.exceptions import (
    ArchiveError,
    CheckpointError,
    EncryptionError,
    SnapVaultError,
    ValidationError,
)
from snapvault.progress import ProgressCallback, Stage, emit
from snapvault.vault.checkpoint import read_checkpoint, write_checkpoint
from snapvault.vault.cipher import encrypt_artifact

logger = structlog.get_logger()


class BackupState(str, Enum):
    """States of the backup state machine."""

    VALIDATING = "validating"
    DETECTING_CHANGES = "detecting_changes"
    ARCHIVING = "archiving"
    ENCRYPTING = "encrypting"
    UPDATING_CHECKPOINT = "updating_checkpoint"
    SUCCEEDED = "succeeded"
    NO_CHANGE = "no_change"
    FAILED = "failed"


class BackupStatus(str, Enum):
    """Terminal outcome reported to adapters."""

    SUCCEEDED = "succeeded"
    NO_CHANGE = "no_change"
    FAILED = "failed"


# Error kind used when a stage fails with an unexpected exception
_STAGE_ERRORS = {
    BackupState.VALIDATING: ValidationError,
    BackupState.DETECTING_CHANGES: ValidationError,
    BackupState.ARCHIVING: ArchiveError,
    BackupState.ENCRYPTING: EncryptionError,
    BackupState.UPDATING_CHECKPOINT: CheckpointError,
}


@dataclass
class BackupResult:
    """Result of a backup job."""

    job_id: str  # ULID
    status: BackupStatus
    state: BackupState  # Last state entered; the failing one for failures
    started_at: datetime
    duration_seconds: float = 0.0
    artifact: Artifact | None = None
    files_archived: int | None = None  # None when the whole tree was archived
    description: str = ""
    error_kind: str | None = None
    error_message: str | None = None
    error_details: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == BackupStatus.SUCCEEDED

    @property
    def no_change(self) -> bool:
        return self.status == BackupStatus.NO_CHANGE

    @property
    def failed(self) -> bool:
        return self.status == BackupStatus.FAILED

    @property
    def artifact_path(self) -> Path | None:
        return self.artifact.path if self.artifact else None


def validate_paths(job: BackupJob) -> None:
    """
    Check that source and destination are usable directories.

    Raises:
        ValidationError: If a path is missing, not a directory, or lacks
            the required permissions
    """
    errors: List[str] = []
    source, destination = job.source, job.destination

    if not source.is_dir():
        errors.append(f"source directory does not exist: {source}")
    elif not os.access(source, os.R_OK | os.X_OK):
        errors.append(f"source directory is not readable: {source}")

    if not destination.is_dir():
        errors.append(f"destination directory does not exist: {destination}")
    elif not os.access(destination, os.W_OK | os.X_OK):
        errors.append(f"destination directory is not writable: {destination}")

    if not errors and source.resolve() == destination.resolve():
        errors.append("source and destination must be different directories")

    if errors:
        raise ValidationError(
            "; ".join(errors),
            details={
                "stage": BackupState.VALIDATING.value,
                "source": str(source),
                "destination": str(destination),
            },
        )


async def run_backup(
    job: BackupJob,
    progress: ProgressCallback | None = None,
) -> BackupResult:
    """
    Execute a backup job to a terminal outcome.

    This is the main entry point for backups. It:
    1. Validates source and destination
    2. Detects changes since the checkpoint (incremental jobs only)
    3. Archives the tree or the change set
    4. Encrypts the archive (when the job carries an EncryptionSpec)
    5. Records the job's start instant as the new checkpoint
       (incremental jobs only)

    Errors never escape; they are reported in the result with their kind,
    the failing stage and the path involved.

    Args:
        job: The backup job
        progress: Optional callback receiving stage-completion events

    Returns:
        BackupResult (succeeded, no_change or failed)
    """
    job_id = str(ULID())
    start_time = datetime.now(UTC)
    start_epoch = int(start_time.timestamp())
    state = BackupState.VALIDATING
    files_archived: int | None = None

    logger.info(
        "backup_started",
        job_id=job_id,
        name=job.name,
        source=str(job.source),
        destination=str(job.destination),
        compression=job.compression.value,
        encryption=job.encryption.method.value if job.encryption else None,
        incremental=job.incremental,
        description=job.description,
    )

    def _finish(status: BackupStatus, **kwargs: Any) -> BackupResult:
        return BackupResult(
            job_id=job_id,
            status=status,
            started_at=start_time,
            duration_seconds=(datetime.now(UTC) - start_time).total_seconds(),
            description=job.description,
            files_archived=files_archived,
            **kwargs,
        )

    try:
        # Step 1: Validate paths
        validate_paths(job)
        emit(progress, job_id, Stage.VALIDATE)

        # Step 2: Scope the archive to changed files
        files = None
        if job.incremental:
            state = BackupState.DETECTING_CHANGES
            since = await read_checkpoint(job.destination) or 0
            changes = await detect_changes_async(
                job.source, since, exclude=job.destination
            )
            emit(progress, job_id, Stage.DETECT, since=since, changed=len(changes))

            if changes.is_empty:
                logger.info("backup_no_change", job_id=job_id, since=since)
                files_archived = 0
                return _finish(BackupStatus.NO_CHANGE, state=BackupState.NO_CHANGE)

            files = list(changes)
            files_archived = len(files)

        # Step 3: Archive
        state = BackupState.ARCHIVING
        artifact = await create_archive(job, files)
        emit(progress, job_id, Stage.ARCHIVE, path=str(artifact.path))

        # Step 4: Encrypt
        if job.encryption is not None:
            state = BackupState.ENCRYPTING
            artifact = await encrypt_artifact(artifact, job.encryption)
            emit(progress, job_id, Stage.ENCRYPT, path=str(artifact.path))

        # Step 5: Checkpoint
        if job.incremental:
            state = BackupState.UPDATING_CHECKPOINT
            await write_checkpoint(job.destination, start_epoch)
            emit(progress, job_id, Stage.CHECKPOINT, epoch=start_epoch)

    except Exception as exc:
        if isinstance(exc, SnapVaultError):
            err = exc
        else:
            err = _STAGE_ERRORS[state](
                f"Unexpected error: {exc}",
                details={"stage": state.value},
            )
        details = {"stage": state.value, **err.details}

        logger.error(
            "backup_failed",
            job_id=job_id,
            error_kind=err.kind,
            error=err.message,
            stage=details["stage"],
            path=details.get("path"),
        )

        return _finish(
            BackupStatus.FAILED,
            state=state,
            error_kind=err.kind,
            error_message=err.message,
            error_details=details,
        )

    result = _finish(
        BackupStatus.SUCCEEDED,
        state=BackupState.SUCCEEDED,
        artifact=artifact,
    )

    logger.info(
        "backup_completed",
        job_id=job_id,
        artifact=str(artifact.path),
        encrypted=artifact.encrypted,
        files_archived=files_archived,
        duration=result.duration_seconds,
    )

    return result


def execute_backup(
    job: BackupJob,
    progress: ProgressCallback | None = None,
) -> BackupResult:
    """
    Synchronous entry point: run a backup job on a private event loop.
    """
    return asyncio.run(run_backup(job, progress))
