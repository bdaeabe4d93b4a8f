# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based job configuration.

These helpers are small wrappers around create_backup_job() and
create_restore_job(). They let cron entries and containers describe a job
entirely through environment variables.
"""

from __future__ import annotations

import os

from snapvault.builder import create_backup_job, create_restore_job
from snapvault.config import BackupJob, RestoreJob
from snapvault.errors import explain_invalid_bool_env, explain_missing_env
from snapvault.exceptions import ConfigurationError

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _require(variable: str) -> str:
    value = os.getenv(variable)
    if not value:
        raise ConfigurationError(explain_missing_env(variable))
    return value


def _parse_bool(variable: str, value: str | None) -> bool:
    if not value:
        return False
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(variable, value))


def create_backup_job_from_env() -> BackupJob:
    """
    Create a BackupJob from environment variables.

    Required:
        - SNAPVAULT_SOURCE: Directory to back up
        - SNAPVAULT_DESTINATION: Directory receiving the archive
        - SNAPVAULT_NAME: Archive base name

    Optional environment variables:
        - SNAPVAULT_COMPRESSION: 'none' | 'gzip' | 'bzip2' | 'zip' | 'tar'
          (default: gzip)
        - SNAPVAULT_ENCRYPTION_METHOD: 'AES-256-CBC' | 'ChaCha20'; setting it
          enables encryption and requires SNAPVAULT_KEY
        - SNAPVAULT_KEY: Key material
        - SNAPVAULT_INCREMENTAL: yes/no (default: no)
        - SNAPVAULT_DESCRIPTION: Free-text description
    """

    source = _require("SNAPVAULT_SOURCE")
    destination = _require("SNAPVAULT_DESTINATION")
    name = _require("SNAPVAULT_NAME")

    return create_backup_job(
        source,
        destination,
        name,
        compression=os.getenv("SNAPVAULT_COMPRESSION") or "gzip",
        encryption_method=os.getenv("SNAPVAULT_ENCRYPTION_METHOD") or None,
        key=os.getenv("SNAPVAULT_KEY"),
        incremental=_parse_bool(
            "SNAPVAULT_INCREMENTAL", os.getenv("SNAPVAULT_INCREMENTAL")
        ),
        description=os.getenv("SNAPVAULT_DESCRIPTION", ""),
    )


def create_restore_job_from_env() -> RestoreJob:
    """
    Create a RestoreJob from environment variables.

    Required:
        - SNAPVAULT_ARCHIVE: Artifact to restore
        - SNAPVAULT_RESTORE_DESTINATION: Directory receiving the files

    Optional:
        - SNAPVAULT_KEY: Key material for encrypted artifacts
    """

    return create_restore_job(
        _require("SNAPVAULT_ARCHIVE"),
        _require("SNAPVAULT_RESTORE_DESTINATION"),
        key=os.getenv("SNAPVAULT_KEY"),
    )
