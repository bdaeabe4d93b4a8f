# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Engine - Archive building and restore operations.
"""

from snapvault.backup.manager import (
    ARCHIVE_BUILDERS,
    artifact_name,
    build_archive,
    create_archive,
    list_artifacts,
)

from snapvault.backup.restore import (
    EXTRACTORS,
    detect_format,
    extract_archive,
    run_restore,
    execute_restore,
    RestoreResult,
    RestoreStatus,
)

__all__ = [
    # Manager
    "ARCHIVE_BUILDERS",
    "artifact_name",
    "build_archive",
    "create_archive",
    "list_artifacts",
    # Restore
    "EXTRACTORS",
    "detect_format",
    "extract_archive",
    "run_restore",
    "execute_restore",
    "RestoreResult",
    "RestoreStatus",
]
