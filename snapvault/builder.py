# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Builder - Functional builder pattern for jobs.

This module provides pure functions for building BackupJob and RestoreJob
values. Each function takes a job dict and returns a new dict with the
modification applied (immutable updates). Every adapter, whether it reads
flags, environment variables or prompts, populates the same builder.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict

from snapvault.config import (
    BackupJob,
    CipherMethod,
    Compression,
    EncryptionSpec,
    RestoreJob,
    key_strength_problems,
)
from snapvault.errors import (
    explain_missing_key,
    explain_unknown_cipher,
    explain_unknown_compression,
    explain_weak_key,
)
from snapvault.exceptions import ConfigurationError


# Type alias for builder functions
JobDict = Dict[str, Any]
BuilderFunc = Callable[[JobDict], JobDict]


def create_empty_job() -> JobDict:
    """
    Create an initial empty backup job dictionary.

    Returns:
        Dict with default values for all job fields
    """
    return {
        "source": None,
        "destination": None,
        "name": "",
        "created_at": None,
        "compression": Compression.GZIP,
        "encryption": None,
        "incremental": False,
        "description": "",
    }


def from_source(job: JobDict, source: Path | str) -> JobDict:
    """
    Set the directory to back up.

    Args:
        job: Current job dictionary
        source: Source directory

    Returns:
        New job dictionary with source set
    """
    return {**job, "source": Path(source)}


def to_destination(job: JobDict, destination: Path | str) -> JobDict:
    """
    Set the directory receiving the archive.

    Args:
        job: Current job dictionary
        destination: Destination directory

    Returns:
        New job dictionary with destination set
    """
    return {**job, "destination": Path(destination)}


def with_name(job: JobDict, name: str) -> JobDict:
    """
    Set the archive base name.

    Args:
        job: Current job dictionary
        name: Base name, e.g. 'home' gives 'home_20260101_020000.tar.gz'

    Returns:
        New job dictionary with name set
    """
    return {**job, "name": name}


def compress_with(job: JobDict, codec: Compression | str) -> JobDict:
    """
    Choose the container codec.

    Args:
        job: Current job dictionary
        codec: One of 'none', 'gzip', 'bzip2', 'zip', 'tar'

    Returns:
        New job dictionary with compression set

    Raises:
        ConfigurationError: If the codec is unknown
    """
    if isinstance(codec, str) and not isinstance(codec, Compression):
        try:
            codec = Compression(codec.lower())
        except ValueError:
            raise ConfigurationError(
                explain_unknown_compression(codec, [c.value for c in Compression])
            )
    return {**job, "compression": codec}


def parse_cipher_method(method: CipherMethod | str) -> CipherMethod:
    """
    Resolve an encryption method name, case-insensitively.

    Raises:
        ConfigurationError: If the method is unknown
    """
    if isinstance(method, CipherMethod):
        return method
    for candidate in CipherMethod:
        if candidate.value.lower() == str(method).lower():
            return candidate
    raise ConfigurationError(
        explain_unknown_cipher(method, [m.value for m in CipherMethod])
    )


def encrypt_with(job: JobDict, method: CipherMethod | str, key: str | None) -> JobDict:
    """
    Enable encryption of the finished archive.

    The key is checked here, before any job exists, so adapters can show
    the problems to the user right away.

    Args:
        job: Current job dictionary
        method: 'AES-256-CBC' or 'ChaCha20'
        key: Key material

    Returns:
        New job dictionary with encryption set

    Raises:
        ConfigurationError: If the method is unknown or the key is weak
    """
    resolved = parse_cipher_method(method)

    if not key:
        raise ConfigurationError(explain_missing_key())

    problems = key_strength_problems(key)
    if problems:
        raise ConfigurationError(explain_weak_key(problems))

    return {**job, "encryption": EncryptionSpec(method=resolved, key=key)}


def without_encryption(job: JobDict) -> JobDict:
    """
    Disable encryption.

    Args:
        job: Current job dictionary

    Returns:
        New job dictionary with encryption cleared
    """
    return {**job, "encryption": None}


def incremental(job: JobDict, enabled: bool = True) -> JobDict:
    """
    Archive only files changed since the destination's checkpoint.

    Args:
        job: Current job dictionary
        enabled: Whether incremental mode is on

    Returns:
        New job dictionary with incremental mode set
    """
    return {**job, "incremental": bool(enabled)}


def describe(job: JobDict, description: str) -> JobDict:
    """
    Attach a free-text description to the job.

    Args:
        job: Current job dictionary
        description: Description text

    Returns:
        New job dictionary with description set
    """
    return {**job, "description": description}


def at_time(job: JobDict, created_at: datetime) -> JobDict:
    """
    Pin the job's creation instant (used in the archive name).

    Args:
        job: Current job dictionary
        created_at: Timezone-aware datetime

    Returns:
        New job dictionary with created_at set
    """
    return {**job, "created_at": created_at}


def build_backup_job(job_dict: JobDict) -> BackupJob:
    """
    Validate and build an immutable BackupJob from a job dictionary.

    Args:
        job_dict: Job dictionary built using builder functions

    Returns:
        Validated, immutable BackupJob instance

    Raises:
        ConfigurationError: If required fields are missing or invalid
    """
    missing = [k for k in ("source", "destination", "name") if not job_dict.get(k)]
    if missing:
        raise ConfigurationError(
            "Backup job is incomplete",
            details={"missing": missing},
        )

    fields = dict(job_dict)
    if fields.get("created_at") is None:
        fields.pop("created_at", None)

    return BackupJob(**fields)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        job = pipe(
            lambda j: from_source(j, "/srv/data"),
            lambda j: to_destination(j, "/mnt/backups"),
            lambda j: with_name(j, "data"),
            incremental,
        )(create_empty_job())

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(job: JobDict) -> JobDict:
        result = job
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupJob:
    """
    Build a job by applying a sequence of builder functions.

    This is a convenience function that combines pipe() and
    build_backup_job().

    Example:
        job = build_from_steps(
            lambda j: from_source(j, "/srv/data"),
            lambda j: to_destination(j, "/mnt/backups"),
            lambda j: with_name(j, "data"),
            lambda j: compress_with(j, "bzip2"),
        )

    Args:
        *steps: Builder functions to apply in sequence

    Returns:
        Validated, immutable BackupJob instance
    """
    return build_backup_job(pipe(*steps)(create_empty_job()))


def create_backup_job(
    source: str | Path,
    destination: str | Path,
    name: str,
    *,
    compression: str | Compression = "gzip",
    encryption_method: str | CipherMethod | None = None,
    key: str | None = None,
    incremental: bool = False,
    description: str = "",
    created_at: datetime | None = None,
) -> BackupJob:
    """
    Create a backup job from simple parameters.

    This is the recommended user-facing API for creating jobs. It's
    simpler than the builder pattern and easier to understand.

    Args:
        source: Directory to back up
        destination: Directory receiving the archive
        name: Archive base name
        compression: 'none', 'gzip', 'bzip2', 'zip' or 'tar' (default: 'gzip')
        encryption_method: 'AES-256-CBC' or 'ChaCha20' (optional)
        key: Key material (required with encryption_method)
        incremental: Archive only files changed since the last checkpoint
        description: Free-text description
        created_at: Pin the creation instant (default: now, UTC)

    Returns:
        Validated, immutable BackupJob instance

    Example:
        job = create_backup_job(
            "/srv/data",
            "/mnt/backups",
            "data",
            compression="bzip2",
            encryption_method="ChaCha20",
            key="Correct-Horse-9",
            incremental=True,
        )
    """
    job = create_empty_job()
    job = from_source(job, source)
    job = to_destination(job, destination)
    job = with_name(job, name)
    job = compress_with(job, compression)

    if encryption_method is not None:
        job = encrypt_with(job, encryption_method, key)

    job = {**job, "incremental": bool(incremental)}

    if description:
        job = describe(job, description)

    if created_at is not None:
        job = at_time(job, created_at)

    return build_backup_job(job)


def create_restore_job(
    archive: str | Path,
    destination: str | Path,
    key: str | None = None,
) -> RestoreJob:
    """
    Create a restore job.

    The key is not strength-checked: it only has to match the one used
    for encryption.

    Args:
        archive: Artifact to restore (.tar, .tar.gz, .tar.bz2, .zip, or .enc)
        destination: Directory receiving the files
        key: Key material for encrypted artifacts

    Returns:
        Immutable RestoreJob instance
    """
    if not archive or not destination:
        raise ConfigurationError(
            "Restore job is incomplete",
            details={"archive": str(archive or ""), "destination": str(destination or "")},
        )
    return RestoreJob(archive=Path(archive), destination=Path(destination), key=key or None)
