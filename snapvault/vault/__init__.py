# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Vault - Artifact encryption and checkpoint storage.
"""

from snapvault.vault.checkpoint import (
    CHECKPOINT_FILENAME,
    checkpoint_path,
    read_checkpoint,
    write_checkpoint,
    clear_checkpoint,
)

from snapvault.vault.cipher import (
    CIPHER_STRATEGIES,
    encrypt_artifact,
    decrypt_artifact,
    encrypt_bytes,
    decrypt_bytes,
)

__all__ = [
    # Checkpoints
    "CHECKPOINT_FILENAME",
    "checkpoint_path",
    "read_checkpoint",
    "write_checkpoint",
    "clear_checkpoint",
    # Cipher
    "CIPHER_STRATEGIES",
    "encrypt_artifact",
    "decrypt_artifact",
    "encrypt_bytes",
    "decrypt_bytes",
]
