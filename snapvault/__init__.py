# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault - Directory backup and restore with compression and encryption.

Archives a directory (or only what changed since the last run), optionally
encrypts the archive with a passphrase-derived key, and restores archives
back into a directory.
"""

__version__ = "0.1.0"

# Job creation (user-facing API)
from snapvault.builder import create_backup_job, create_restore_job
from snapvault.config import (
    Artifact,
    BackupJob,
    CipherMethod,
    Compression,
    EncryptionSpec,
    RestoreJob,
)

# Orchestration
from snapvault.core import (
    BackupResult,
    BackupStatus,
    execute_backup,
    run_backup,
)
from snapvault.backup.restore import (
    RestoreResult,
    RestoreStatus,
    execute_restore,
    run_restore,
)

# Environment-based configuration
from snapvault.env import create_backup_job_from_env, create_restore_job_from_env

from snapvault.progress import ProgressEvent, Stage

__all__ = [
    # Version
    "__version__",
    # Job creation
    "create_backup_job",
    "create_restore_job",
    "create_backup_job_from_env",
    "create_restore_job_from_env",
    # Types
    "Artifact",
    "BackupJob",
    "CipherMethod",
    "Compression",
    "EncryptionSpec",
    "RestoreJob",
    "BackupResult",
    "BackupStatus",
    "RestoreResult",
    "RestoreStatus",
    "ProgressEvent",
    "Stage",
    # Orchestration
    "execute_backup",
    "run_backup",
    "execute_restore",
    "run_restore",
]
