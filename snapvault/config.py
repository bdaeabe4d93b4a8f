# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Configuration - Immutable job descriptions.

Jobs are frozen after creation: an adapter builds one, hands it to an
orchestrator, and every stage reads the same value.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import List
import re

from snapvault.errors import (
    explain_unknown_cipher,
    explain_unknown_compression,
    explain_weak_key,
)

MIN_KEY_LENGTH = 12

# Marker appended to encrypted artifacts
ENCRYPTED_SUFFIX = ".enc"

# Marker for files still being written; never a valid artifact
PARTIAL_SUFFIX = ".part"


class Compression(str, Enum):
    """Container codec requested for a backup."""

    NONE = "none"
    GZIP = "gzip"
    BZIP2 = "bzip2"
    ZIP = "zip"
    TAR = "tar"

    @property
    def archive_format(self) -> "ArchiveFormat":
        return _FORMAT_BY_COMPRESSION[self]


class CipherMethod(str, Enum):
    """Encryption method applied to a finished archive."""

    AES_256_CBC = "AES-256-CBC"
    CHACHA20 = "ChaCha20"


class ArchiveFormat(str, Enum):
    """On-disk archive format, identified by file suffix."""

    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_BZ2 = "tar.bz2"
    ZIP = "zip"

    @property
    def suffix(self) -> str:
        return f".{self.value}"

    @classmethod
    def from_path(cls, path: Path | str) -> "ArchiveFormat | None":
        """
        Detect the archive format from a file name.

        Longer suffixes are tried first so that ``x.tar.gz`` is not taken
        for a plain tar. Returns None for unrecognized names.
        """
        name = Path(path).name.lower()
        for fmt in sorted(cls, key=lambda f: len(f.value), reverse=True):
            if name.endswith(fmt.suffix):
                return fmt
        return None


_FORMAT_BY_COMPRESSION = {
    Compression.NONE: ArchiveFormat.TAR,
    Compression.TAR: ArchiveFormat.TAR,
    Compression.GZIP: ArchiveFormat.TAR_GZ,
    Compression.BZIP2: ArchiveFormat.TAR_BZ2,
    Compression.ZIP: ArchiveFormat.ZIP,
}


def key_strength_problems(key: str) -> List[str]:
    """
    Check key material against the strength rules.

    Rules:
    - At least 12 characters
    - At least one uppercase and one lowercase letter
    - At least one digit
    - At least one symbol outside [A-Za-z0-9]

    Returns:
        List of human-readable problems (empty when the key is acceptable)
    """
    problems: List[str] = []
    if not isinstance(key, str) or len(key) < MIN_KEY_LENGTH:
        problems.append(f"must be at least {MIN_KEY_LENGTH} characters long")
        if not isinstance(key, str):
            return problems
    if not re.search(r"[A-Z]", key):
        problems.append("must contain an uppercase letter")
    if not re.search(r"[a-z]", key):
        problems.append("must contain a lowercase letter")
    if not re.search(r"[0-9]", key):
        problems.append("must contain a digit")
    if not re.search(r"[^A-Za-z0-9]", key):
        problems.append("must contain a symbol")
    return problems


def _raise_if_errors(errors: List[str], message: str) -> None:
    if errors:
        from snapvault.exceptions import ConfigurationError

        raise ConfigurationError(message, details={"errors": errors})


@dataclass(frozen=True)
class EncryptionSpec:
    """Encryption method plus key material, held only for one job."""

    method: CipherMethod
    key: str = field(repr=False)

    def __post_init__(self) -> None:
        errors: List[str] = []

        if not isinstance(self.method, CipherMethod):
            try:
                object.__setattr__(self, "method", CipherMethod(self.method))
            except ValueError:
                errors.append(
                    explain_unknown_cipher(self.method, [m.value for m in CipherMethod])
                )

        problems = key_strength_problems(self.key)
        if problems:
            errors.append(explain_weak_key(problems))

        _raise_if_errors(errors, "Encryption settings are invalid")


@dataclass(frozen=True)
class BackupJob:
    """
    Immutable description of one backup run.

    The orchestrator never mutates a job; adapters create a new one for
    every invocation.
    """

    # Directory to back up
    source: Path

    # Directory receiving the archive and the checkpoint record
    destination: Path

    # Base name of the archive file
    name: str

    # Creation instant, used in the archive file name
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Container codec
    compression: Compression = Compression.GZIP

    # Optional encryption applied after archiving
    encryption: EncryptionSpec | None = None

    # Archive only files changed since the destination's checkpoint
    incremental: bool = False

    # Free-text description, logged and carried in the result
    description: str = ""

    def __post_init__(self) -> None:
        """Normalize field types and validate the job."""
        errors: List[str] = []

        object.__setattr__(self, "source", Path(self.source))
        object.__setattr__(self, "destination", Path(self.destination))

        if not isinstance(self.compression, Compression):
            try:
                object.__setattr__(
                    self, "compression", Compression(str(self.compression).lower())
                )
            except ValueError:
                errors.append(
                    explain_unknown_compression(
                        self.compression, [c.value for c in Compression]
                    )
                )

        if not self.name or not self.name.strip():
            errors.append("name must not be empty")
        elif "/" in self.name or "\\" in self.name:
            errors.append(f"name must not contain path separators: {self.name!r}")

        if self.encryption is not None and not isinstance(self.encryption, EncryptionSpec):
            errors.append("encryption must be an EncryptionSpec or None")

        if not isinstance(self.created_at, datetime):
            errors.append(f"created_at must be a datetime, got {self.created_at!r}")

        _raise_if_errors(errors, "Backup job validation failed")

    @property
    def encrypted(self) -> bool:
        return self.encryption is not None

    def with_updates(self, **kwargs) -> "BackupJob":
        """
        Create a new job with updated values.

        Since the job is frozen, this creates a new instance.
        """
        from dataclasses import replace

        return replace(self, **kwargs)


@dataclass(frozen=True)
class Artifact:
    """A produced archive file, plaintext or encrypted."""

    path: Path
    format: ArchiveFormat
    encrypted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))
        # The flag and the file name must agree
        if self.path.name.endswith(ENCRYPTED_SUFFIX) != self.encrypted:
            raise ValueError(
                f"Artifact {self.path} has encrypted={self.encrypted} "
                f"but its suffix says otherwise"
            )


@dataclass(frozen=True)
class RestoreJob:
    """Immutable description of one restore run."""

    # Archive artifact to restore (plaintext or .enc)
    archive: Path

    # Directory receiving the extracted files
    destination: Path

    # Key for encrypted artifacts; not strength-checked
    key: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "archive", Path(self.archive))
        object.__setattr__(self, "destination", Path(self.destination))
