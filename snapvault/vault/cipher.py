# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Cipher - Encrypt and decrypt archive artifacts.

Two methods are supported, each behind the same encrypt/decrypt pair:

1. AES-256-CBC with PKCS7 padding, authenticated by HMAC-SHA256
   (encrypt-then-MAC)
2. ChaCha20-Poly1305 (AEAD)

Keys are derived with PBKDF2-HMAC-SHA256 from the passphrase and a fresh
random salt. The salt, the iteration count and the method are stored in a
small header so decryption needs nothing but the key.

Container layout:

    magic "SNVC" | version (1) | method id (1) | iterations (4, BE) | salt (16)
    AES-256-CBC: iv (16) | ciphertext | hmac-sha256 (32)
    ChaCha20:    nonce (12) | ciphertext+tag
"""

import asyncio
import os
import struct
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict

import aiofiles
import structlog
from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from snapvault.config import (
    ENCRYPTED_SUFFIX,
    PARTIAL_SUFFIX,
    Artifact,
    CipherMethod,
    EncryptionSpec,
)
from snapvault.exceptions import (
    DecryptionError,
    EncryptionError,
    ExtractionError,
    ValidationError,
)

logger = structlog.get_logger()

# Thread pool for CPU-bound key derivation and cipher work
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapvault-cipher")

MAGIC = b"SNVC"
FORMAT_VERSION = 1
SALT_LEN = 16
KEY_LEN = 32
DEFAULT_KDF_ITERATIONS = 200_000
MIN_KDF_ITERATIONS = 100_000

_HEADER = struct.Struct(">4sBBI")
HEADER_LEN = _HEADER.size + SALT_LEN

_METHOD_IDS: Dict[CipherMethod, int] = {
    CipherMethod.AES_256_CBC: 1,
    CipherMethod.CHACHA20: 2,
}
_METHODS_BY_ID = {v: k for k, v in _METHOD_IDS.items()}


def derive_key(passphrase: str, salt: bytes, iterations: int, length: int = KEY_LEN) -> bytes:
    """
    Derive key bytes from a passphrase with PBKDF2-HMAC-SHA256.

    Args:
        passphrase: User key material
        salt: Random per-encryption salt
        iterations: PBKDF2 iteration count
        length: Number of bytes to derive

    Returns:
        Derived key bytes
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


# ============================================================================
# Method strategies
# ============================================================================


def _aes_cbc_encrypt(passphrase: str, header: bytes, salt: bytes, iterations: int, data: bytes) -> bytes:
    material = derive_key(passphrase, salt, iterations, length=2 * KEY_LEN)
    enc_key, mac_key = material[:KEY_LEN], material[KEY_LEN:]
    iv = os.urandom(16)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(data) + padder.finalize()

    encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    mac = hmac.HMAC(mac_key, hashes.SHA256())
    mac.update(header + iv + ciphertext)
    return iv + ciphertext + mac.finalize()


def _aes_cbc_decrypt(passphrase: str, header: bytes, salt: bytes, iterations: int, payload: bytes) -> bytes:
    if len(payload) < 16 + 16 + 32:
        raise DecryptionError("Ciphertext is truncated")

    material = derive_key(passphrase, salt, iterations, length=2 * KEY_LEN)
    enc_key, mac_key = material[:KEY_LEN], material[KEY_LEN:]
    iv, ciphertext, tag = payload[:16], payload[16:-32], payload[-32:]

    # Authenticate before touching the ciphertext
    mac = hmac.HMAC(mac_key, hashes.SHA256())
    mac.update(header + iv + ciphertext)
    try:
        mac.verify(tag)
    except InvalidSignature:
        raise DecryptionError("Wrong key or corrupted archive (HMAC mismatch)")

    decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        raise DecryptionError("Corrupted archive (bad padding)")


def _chacha_encrypt(passphrase: str, header: bytes, salt: bytes, iterations: int, data: bytes) -> bytes:
    key = derive_key(passphrase, salt, iterations)
    nonce = os.urandom(12)
    return nonce + ChaCha20Poly1305(key).encrypt(nonce, data, header)


def _chacha_decrypt(passphrase: str, header: bytes, salt: bytes, iterations: int, payload: bytes) -> bytes:
    if len(payload) < 12 + 16:
        raise DecryptionError("Ciphertext is truncated")

    key = derive_key(passphrase, salt, iterations)
    nonce, ciphertext = payload[:12], payload[12:]
    try:
        return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, header)
    except InvalidTag:
        raise DecryptionError("Wrong key or corrupted archive (authentication tag mismatch)")


@dataclass(frozen=True)
class CipherStrategy:
    """Encrypt/decrypt pair for one method."""

    encrypt: Callable[[str, bytes, bytes, int, bytes], bytes]
    decrypt: Callable[[str, bytes, bytes, int, bytes], bytes]


# Lookup table: one strategy per encryption method
CIPHER_STRATEGIES: Dict[CipherMethod, CipherStrategy] = {
    CipherMethod.AES_256_CBC: CipherStrategy(_aes_cbc_encrypt, _aes_cbc_decrypt),
    CipherMethod.CHACHA20: CipherStrategy(_chacha_encrypt, _chacha_decrypt),
}


# ============================================================================
# Byte-level API
# ============================================================================


def encrypt_bytes(
    data: bytes,
    spec: EncryptionSpec,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> bytes:
    """
    Encrypt data into a self-describing container.

    Args:
        data: Plaintext bytes
        spec: Encryption method and key
        iterations: PBKDF2 iteration count (at least 100,000)

    Returns:
        Container bytes (header + method payload)
    """
    if iterations < MIN_KDF_ITERATIONS:
        raise EncryptionError(
            f"KDF iteration count too low: {iterations}",
            details={"minimum": MIN_KDF_ITERATIONS},
        )

    strategy = CIPHER_STRATEGIES[spec.method]
    salt = os.urandom(SALT_LEN)
    header = _HEADER.pack(MAGIC, FORMAT_VERSION, _METHOD_IDS[spec.method], iterations) + salt
    return header + strategy.encrypt(spec.key, header, salt, iterations, data)


def read_header(blob: bytes) -> tuple[CipherMethod, int, bytes]:
    """
    Parse the container header.

    Returns:
        Tuple of (method, iterations, salt)

    Raises:
        DecryptionError: If the header is missing, truncated or unknown
    """
    if len(blob) < HEADER_LEN:
        raise DecryptionError("Not a snapvault encrypted archive (header truncated)")

    magic, version, method_id, iterations = _HEADER.unpack_from(blob)
    if magic != MAGIC:
        raise DecryptionError("Not a snapvault encrypted archive (bad magic)")
    if version != FORMAT_VERSION:
        raise DecryptionError(f"Unsupported container version: {version}")
    if method_id not in _METHODS_BY_ID:
        raise DecryptionError(f"Unknown encryption method id: {method_id}")
    if iterations < MIN_KDF_ITERATIONS:
        raise DecryptionError(f"KDF iteration count too low: {iterations}")

    salt = blob[_HEADER.size:HEADER_LEN]
    return _METHODS_BY_ID[method_id], iterations, salt


def decrypt_bytes(blob: bytes, key: str) -> bytes:
    """
    Decrypt a container produced by encrypt_bytes().

    Integrity is verified before any plaintext is returned.

    Raises:
        DecryptionError: On a wrong key, tampering or a malformed container
    """
    method, iterations, salt = read_header(blob)
    header = blob[:HEADER_LEN]
    strategy = CIPHER_STRATEGIES[method]
    return strategy.decrypt(key, header, salt, iterations, blob[HEADER_LEN:])


# ============================================================================
# Artifact-level API
# ============================================================================


def encrypted_path_for(path: Path) -> Path:
    """Return the ciphertext path for a plaintext artifact."""
    return path.with_name(path.name + ENCRYPTED_SUFFIX)


def plaintext_name_for(path: Path) -> str:
    """Strip the encrypted-file marker from an artifact name."""
    name = Path(path).name
    if name.endswith(ENCRYPTED_SUFFIX):
        return name[: -len(ENCRYPTED_SUFFIX)]
    return name


async def encrypt_artifact(
    artifact: Artifact,
    spec: EncryptionSpec,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> Artifact:
    """
    Encrypt a plaintext artifact next to itself.

    The ciphertext is written under a ``.part`` name and renamed into place;
    only then is the plaintext archive deleted. On failure the plaintext is
    kept and any partial ciphertext removed.

    Args:
        artifact: Plaintext artifact
        spec: Encryption method and key
        iterations: PBKDF2 iteration count

    Returns:
        Encrypted Artifact (path ends with .enc)

    Raises:
        EncryptionError: If encryption fails
    """
    if artifact.encrypted:
        raise EncryptionError(
            f"Artifact is already encrypted: {artifact.path}",
            details={"stage": "encrypting", "path": str(artifact.path)},
        )

    final_path = encrypted_path_for(artifact.path)
    temp_path = final_path.with_name(final_path.name + PARTIAL_SUFFIX)

    try:
        async with aiofiles.open(artifact.path, "rb") as f:
            plaintext = await f.read()

        loop = asyncio.get_event_loop()
        blob = await loop.run_in_executor(
            _executor, encrypt_bytes, plaintext, spec, iterations
        )

        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(blob)

        temp_path.rename(final_path)

    except Exception as e:
        temp_path.unlink(missing_ok=True)
        raise EncryptionError(
            f"Failed to encrypt archive: {e}",
            details={
                "stage": "encrypting",
                "path": str(artifact.path),
                "method": spec.method.value,
            },
        )

    # Ciphertext is in place; a leftover plaintext is only logged
    try:
        artifact.path.unlink()
    except OSError as e:
        logger.warning(
            "plaintext_cleanup_failed",
            path=str(artifact.path),
            encrypted=str(final_path),
            error=str(e),
        )

    logger.info(
        "archive_encrypted",
        path=str(final_path),
        method=spec.method.value,
        plaintext_size=len(plaintext),
        encrypted_size=len(blob),
    )

    return Artifact(path=final_path, format=artifact.format, encrypted=True)


async def decrypt_artifact(
    path: Path,
    key: str,
    output_dir: Path,
) -> Path:
    """
    Decrypt an encrypted artifact into ``output_dir``.

    The output keeps the plaintext name (the ``.enc`` marker removed) so
    that format detection can run on it afterwards.

    Args:
        path: Path to the .enc artifact
        key: Key material
        output_dir: Directory receiving the plaintext archive

    Returns:
        Path to the decrypted archive

    Raises:
        DecryptionError: On a wrong key or corrupt ciphertext
        ValidationError: If the encrypted archive cannot be read
        ExtractionError: If the plaintext cannot be written
    """
    output_path = Path(output_dir) / plaintext_name_for(path)

    try:
        async with aiofiles.open(path, "rb") as f:
            blob = await f.read()
    except OSError as e:
        raise ValidationError(
            f"Failed to read encrypted archive: {e}",
            details={"stage": "decrypting", "path": str(path)},
        )

    loop = asyncio.get_event_loop()
    try:
        plaintext = await loop.run_in_executor(_executor, decrypt_bytes, blob, key)
    except DecryptionError as e:
        raise DecryptionError(
            e.message,
            details={"stage": "decrypting", "path": str(path), **e.details},
        )

    try:
        async with aiofiles.open(output_path, "wb") as f:
            await f.write(plaintext)
    except OSError as e:
        raise ExtractionError(
            f"Failed to write decrypted archive: {e}",
            details={"stage": "decrypting", "path": str(output_path)},
        )

    logger.info(
        "archive_decrypted",
        path=str(path),
        output=str(output_path),
        size=len(plaintext),
    )

    return output_path
