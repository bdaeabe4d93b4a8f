# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for snapvault.

These helpers centralize wording for common configuration errors so that
the builder, the environment loader and the CLI present consistent,
actionable messages.
"""

from pathlib import Path
from typing import Iterable, List


def explain_weak_key(problems: List[str]) -> str:
    """
    Explain why an encryption key was rejected.
    """

    return (
        "Encryption key is too weak: "
        + "; ".join(problems)
        + ". Use at least 12 characters mixing upper and lower case letters, "
        "digits and symbols."
    )


def explain_unknown_compression(value: str | None, choices: Iterable[str]) -> str:
    """
    Explain that a compression codec name is not supported.
    """

    return (
        f"Unknown compression codec: {value!r}. "
        f"Expected one of: {', '.join(repr(c) for c in choices)}."
    )


def explain_unknown_cipher(value: str | None, choices: Iterable[str]) -> str:
    """
    Explain that an encryption method name is not supported.
    """

    return (
        f"Unknown encryption method: {value!r}. "
        f"Expected one of: {', '.join(repr(c) for c in choices)}."
    )


def explain_missing_env(variable: str) -> str:
    """
    Explain that a required environment variable is not set.
    """

    return (
        f"{variable} is not set. "
        f"Export {variable} or build the job with snapvault.builder instead."
    )


def explain_missing_key() -> str:
    """
    Explain that encryption was requested without key material.
    """

    return (
        "Encryption was requested but no key was provided. "
        "Pass a key (-k on the command line, SNAPVAULT_KEY in the environment)."
    )


def explain_invalid_bool_env(variable: str, value: str | None) -> str:
    """
    Explain that a yes/no environment variable has an unexpected value.
    """

    return (
        f"Invalid {variable} value: {value!r}. "
        "Expected one of: 'yes', 'no', 'true', 'false', '1', '0'."
    )


def explain_missing_decryption_key() -> str:
    """
    Explain that an encrypted archive was given for restore without a key.
    """

    return (
        "The archive is encrypted but no key was provided. "
        "Pass the key used for the backup (-k on the command line, "
        "SNAPVAULT_KEY in the environment)."
    )


def explain_artifact_exists(path: Path | str) -> str:
    """
    Explain that an archive with the same name already exists.
    """

    return (
        f"Refusing to overwrite existing artifact: {path}. "
        "Archive names carry a one-second timestamp, so two backups with the "
        "same name in the same second collide; wait a second and retry, or "
        "use a different name."
    )
