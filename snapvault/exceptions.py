# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Exceptions - Custom exceptions for the snapvault package.

Every job failure maps onto exactly one of these kinds. Orchestrators turn
them into failed results; nothing here is retried.
"""


class SnapVaultError(Exception):
    """Base exception for all snapvault errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    @property
    def kind(self) -> str:
        """Error kind reported to adapters (the class name)."""
        return type(self).__name__


class ConfigurationError(SnapVaultError):
    """Raised when a job description is invalid."""

    pass


class ValidationError(SnapVaultError):
    """Raised when source or destination paths are missing or inaccessible."""

    pass


class ArchiveError(SnapVaultError):
    """Raised when an archive cannot be produced."""

    pass


class EncryptionError(SnapVaultError):
    """Raised when encrypting an archive fails."""

    pass


class DecryptionError(SnapVaultError):
    """Raised on a wrong key or corrupt ciphertext."""

    pass


class UnsupportedFormatError(SnapVaultError):
    """Raised when an archive suffix matches no extraction strategy."""

    pass


class ExtractionError(SnapVaultError):
    """Raised when an archive cannot be extracted."""

    pass


class CheckpointError(SnapVaultError):
    """Raised when the checkpoint record cannot be written."""

    pass
