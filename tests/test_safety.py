# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Critical Safety Tests for snapvault.

These tests verify the core guarantees:
1. Incremental runs - unchanged sources produce nothing and keep the checkpoint
2. Change scoping - only modified files are archived
3. Encryption integrity - wrong keys and tampering are detected
4. Failure hygiene - failed stages leave no half-written artifacts
5. Restore safety - nothing is written before the format is known, and
   archive entries cannot escape the destination
"""

import io
import os
import tarfile
import tempfile
import zipfile
from pathlib import Path

import pytest

from conftest import (
    CHECKPOINT_EPOCH,
    FIXED_TIME,
    NEW_MTIME,
    OLD_MTIME,
    STRONG_KEY,
    read_tree,
    set_mtime,
)
from snapvault.backup.manager import list_artifacts
from snapvault.backup.restore import list_archive_members, run_restore
from snapvault.builder import create_backup_job, create_restore_job
from snapvault.config import CipherMethod, Compression, EncryptionSpec
from snapvault.core import BackupState, BackupStatus, run_backup
from snapvault.exceptions import DecryptionError
from snapvault.vault import cipher
from snapvault.vault.checkpoint import checkpoint_path, read_checkpoint, write_checkpoint


# ============================================================================
# Test 1: INCREMENTAL NO-CHANGE
# ============================================================================

@pytest.mark.asyncio
async def test_incremental_unchanged_source_reports_no_change(
    source_tree: Path, destination: Path
):
    """
    CRITICAL: An incremental run over an unchanged source must produce no
    artifact and must not move the checkpoint.
    """
    set_mtime(source_tree, OLD_MTIME)
    await write_checkpoint(destination, CHECKPOINT_EPOCH)

    job = create_backup_job(source_tree, destination, "data", incremental=True)
    result = await run_backup(job)

    assert result.status == BackupStatus.NO_CHANGE
    assert result.state == BackupState.NO_CHANGE
    assert result.files_archived == 0
    assert result.artifact is None
    assert list_artifacts(destination) == []
    assert await read_checkpoint(destination) == CHECKPOINT_EPOCH


@pytest.mark.asyncio
async def test_incremental_without_checkpoint_archives_everything(
    source_tree: Path, destination: Path
):
    """First incremental run treats a missing checkpoint as the epoch."""
    set_mtime(source_tree, OLD_MTIME)

    job = create_backup_job(source_tree, destination, "data", incremental=True)
    result = await run_backup(job)

    assert result.succeeded
    assert result.files_archived == 5
    assert "_incremental" in result.artifact_path.name
    assert await read_checkpoint(destination) is not None


# ============================================================================
# Test 2: CHANGE SCOPING
# ============================================================================

@pytest.mark.asyncio
async def test_incremental_archives_exactly_the_changed_files(
    source_tree: Path, destination: Path
):
    """
    CRITICAL: With N modified files, the archive holds exactly those N
    paths and the checkpoint advances.
    """
    set_mtime(source_tree, OLD_MTIME)
    for rel in ("a.txt", "sub/deeper/c.dat"):
        os.utime(source_tree / rel, (NEW_MTIME, NEW_MTIME))
    await write_checkpoint(destination, CHECKPOINT_EPOCH)

    job = create_backup_job(source_tree, destination, "data", incremental=True)
    result = await run_backup(job)

    assert result.succeeded
    assert result.files_archived == 2

    with tarfile.open(result.artifact_path, "r:gz") as tar:
        assert sorted(tar.getnames()) == ["a.txt", "sub/deeper/c.dat"]

    assert await read_checkpoint(destination) > CHECKPOINT_EPOCH


@pytest.mark.asyncio
async def test_nested_destination_is_never_archived(temp_dir: Path):
    """A destination inside the source is skipped by both full and incremental runs."""
    source = temp_dir / "home"
    (source / "docs").mkdir(parents=True)
    (source / "docs" / "note.txt").write_text("keep me\n")
    destination = source / "backups"
    destination.mkdir()
    (destination / "old_20200101_000000.tar").write_bytes(b"not really a tar")

    job = create_backup_job(source, destination, "home", compression="tar")
    result = await run_backup(job)

    assert result.succeeded
    with tarfile.open(result.artifact_path) as tar:
        names = tar.getnames()
    assert "docs/note.txt" in names
    assert not any(n.startswith("backups") for n in names)

    incremental_job = create_backup_job(
        source, destination, "home", incremental=True, created_at=FIXED_TIME
    )
    incremental_result = await run_backup(incremental_job)
    assert incremental_result.files_archived == 1


# ============================================================================
# Test 3: ENCRYPTION INTEGRITY
# ============================================================================

@pytest.mark.parametrize("method", list(CipherMethod))
def test_wrong_key_is_rejected(method: CipherMethod):
    """
    CRITICAL: Decrypting with a different key must fail with
    DecryptionError, never return garbage.
    """
    blob = cipher.encrypt_bytes(b"payload", EncryptionSpec(method, STRONG_KEY))

    with pytest.raises(DecryptionError):
        cipher.decrypt_bytes(blob, "Wrong-Horse-99")


@pytest.mark.parametrize("method", list(CipherMethod))
def test_tampered_ciphertext_is_rejected(method: CipherMethod):
    """Flipping a single ciphertext bit must be detected."""
    blob = bytearray(cipher.encrypt_bytes(b"payload" * 100, EncryptionSpec(method, STRONG_KEY)))
    blob[-20] ^= 0x01

    with pytest.raises(DecryptionError):
        cipher.decrypt_bytes(bytes(blob), STRONG_KEY)


@pytest.mark.parametrize("method", list(CipherMethod))
def test_tampered_header_is_rejected(method: CipherMethod):
    """The header is authenticated along with the payload."""
    blob = bytearray(cipher.encrypt_bytes(b"payload", EncryptionSpec(method, STRONG_KEY)))
    # Last salt byte
    blob[cipher.HEADER_LEN - 1] ^= 0x01

    with pytest.raises(DecryptionError):
        cipher.decrypt_bytes(bytes(blob), STRONG_KEY)


def test_non_container_input_is_rejected():
    """Random bytes are not mistaken for a container."""
    with pytest.raises(DecryptionError, match="bad magic"):
        cipher.decrypt_bytes(b"X" * 200, STRONG_KEY)

    with pytest.raises(DecryptionError, match="truncated"):
        cipher.decrypt_bytes(b"SNVC", STRONG_KEY)


def test_encryption_salts_every_container():
    """The same plaintext and key never produce the same ciphertext."""
    spec = EncryptionSpec(CipherMethod.AES_256_CBC, STRONG_KEY)
    assert cipher.encrypt_bytes(b"same", spec) != cipher.encrypt_bytes(b"same", spec)


# ============================================================================
# Test 4: FAILURE HYGIENE
# ============================================================================

@pytest.mark.asyncio
async def test_failed_encryption_keeps_plaintext_archive(
    source_tree: Path, destination: Path, monkeypatch
):
    """
    CRITICAL: If encryption fails, the plaintext archive stays in place,
    no partial ciphertext remains, and the failure names the stage.
    """

    def boom(*args, **kwargs):
        raise RuntimeError("cipher exploded")

    monkeypatch.setattr(cipher, "encrypt_bytes", boom)

    job = create_backup_job(
        source_tree,
        destination,
        "data",
        encryption_method="ChaCha20",
        key=STRONG_KEY,
    )
    result = await run_backup(job)

    assert result.failed
    assert result.state == BackupState.ENCRYPTING
    assert result.error_kind == "EncryptionError"
    assert result.error_details["stage"] == "encrypting"

    plaintext = Path(result.error_details["path"])
    assert plaintext.exists()
    assert plaintext.name.endswith(".tar.gz")
    assert [p.name for p in destination.iterdir()] == [plaintext.name]


@pytest.mark.asyncio
async def test_failed_incremental_run_keeps_checkpoint(
    source_tree: Path, destination: Path, monkeypatch
):
    """A failure before the checkpoint stage never advances the checkpoint."""

    def boom(*args, **kwargs):
        raise RuntimeError("cipher exploded")

    monkeypatch.setattr(cipher, "encrypt_bytes", boom)
    set_mtime(source_tree, NEW_MTIME)
    await write_checkpoint(destination, CHECKPOINT_EPOCH)

    job = create_backup_job(
        source_tree,
        destination,
        "data",
        encryption_method="AES-256-CBC",
        key=STRONG_KEY,
        incremental=True,
    )
    result = await run_backup(job)

    assert result.failed
    assert await read_checkpoint(destination) == CHECKPOINT_EPOCH


@pytest.mark.asyncio
async def test_existing_artifact_is_never_overwritten(
    source_tree: Path, destination: Path
):
    """Two runs with the same name and instant: the second fails."""
    job = create_backup_job(source_tree, destination, "data", created_at=FIXED_TIME)

    first = await run_backup(job)
    original = first.artifact_path.read_bytes()
    second = await run_backup(job)

    assert first.succeeded
    assert second.failed
    assert second.error_kind == "ArchiveError"
    assert "same second" in second.error_message
    assert first.artifact_path.read_bytes() == original


@pytest.mark.asyncio
async def test_plaintext_cleanup_failure_keeps_encrypted_result(
    source_tree: Path, destination: Path, monkeypatch
):
    """
    CRITICAL: Once the ciphertext is in place the job has succeeded, even
    if the plaintext archive cannot be removed.
    """
    original_unlink = Path.unlink

    def stubborn_unlink(self, *args, **kwargs):
        if self.name.endswith(".tar.gz"):
            raise PermissionError(13, "Permission denied", str(self))
        return original_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", stubborn_unlink)

    job = create_backup_job(
        source_tree, destination, "data", encryption_method="AES-256-CBC", key=STRONG_KEY
    )
    result = await run_backup(job)

    assert result.succeeded
    assert result.artifact.encrypted
    assert result.artifact_path.exists()
    assert result.artifact_path.with_suffix("").exists()


def test_partial_files_are_not_listed(destination: Path):
    """Leftover .part files from a killed run are never artifacts."""
    (destination / "data_20260101_000000.tar.gz.part").write_bytes(b"half")
    (destination / "data_20260101_000000.tar.gz.enc.part").write_bytes(b"half")
    (destination / "data_20260101_000001.tar.gz").write_bytes(b"whole")

    assert [p.name for p in list_artifacts(destination)] == ["data_20260101_000001.tar.gz"]


# ============================================================================
# Test 5: RESTORE SAFETY
# ============================================================================

@pytest.mark.asyncio
async def test_unrecognized_format_after_decryption_writes_nothing(
    temp_dir: Path, restore_dir: Path
):
    """
    CRITICAL: If the decrypted payload has no known archive suffix, the
    restore fails with UnsupportedFormatError and the destination is
    untouched.
    """
    blob = cipher.encrypt_bytes(
        b"Rar!\x1a\x07\x00", EncryptionSpec(CipherMethod.CHACHA20, STRONG_KEY)
    )
    archive = temp_dir / "photos.rar.enc"
    archive.write_bytes(blob)

    result = await run_restore(create_restore_job(archive, restore_dir, key=STRONG_KEY))

    assert not result.succeeded
    assert result.error_kind == "UnsupportedFormatError"
    assert not restore_dir.exists()


@pytest.mark.asyncio
async def test_restore_with_wrong_key_fails_cleanly(
    source_tree: Path, destination: Path, restore_dir: Path
):
    """A wrong key yields DecryptionError and no restored files."""
    job = create_backup_job(
        source_tree, destination, "data", encryption_method="AES-256-CBC", key=STRONG_KEY
    )
    backup = await run_backup(job)
    assert backup.succeeded

    result = await run_restore(
        create_restore_job(backup.artifact_path, restore_dir, key="Wrong-Horse-99")
    )

    assert result.error_kind == "DecryptionError"
    assert result.error_details["stage"] == "decrypting"
    assert not restore_dir.exists()


@pytest.mark.asyncio
async def test_restore_encrypted_without_key_fails(temp_dir: Path, restore_dir: Path):
    """An encrypted artifact without a key is a DecryptionError."""
    archive = temp_dir / "data_20260101_000000.tar.gz.enc"
    archive.write_bytes(b"irrelevant")

    result = await run_restore(create_restore_job(archive, restore_dir))

    assert result.error_kind == "DecryptionError"
    assert "archive is encrypted but no key was provided" in result.error_message
    assert not restore_dir.exists()


@pytest.mark.asyncio
async def test_overlong_archive_name_fails_instead_of_raising(
    temp_dir: Path, restore_dir: Path
):
    """OS errors while validating become a failed result, not an exception."""
    archive = temp_dir / ("x" * 300 + ".tar")

    result = await run_restore(create_restore_job(archive, restore_dir))

    assert not result.succeeded
    assert result.error_kind == "ValidationError"
    assert result.error_details["stage"] == "validating"
    assert not restore_dir.exists()


@pytest.mark.asyncio
async def test_temp_space_failure_during_decryption_fails_restore(
    source_tree: Path, destination: Path, restore_dir: Path, monkeypatch
):
    """An I/O failure around decryption is reported, never raised."""
    backup = await run_backup(
        create_backup_job(
            source_tree, destination, "data", encryption_method="ChaCha20", key=STRONG_KEY
        )
    )
    assert backup.succeeded

    def no_space(*args, **kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(tempfile, "mkdtemp", no_space)

    result = await run_restore(
        create_restore_job(backup.artifact_path, restore_dir, key=STRONG_KEY)
    )

    assert not result.succeeded
    assert result.error_kind == "ExtractionError"
    assert result.error_details["stage"] == "decrypting"
    assert "No space left" in result.error_message
    assert not restore_dir.exists()


@pytest.mark.asyncio
async def test_tar_path_traversal_is_refused(temp_dir: Path, restore_dir: Path):
    """Entries with '..' must never be written outside the destination."""
    archive = temp_dir / "evil.tar"
    with tarfile.open(archive, "w") as tar:
        data = b"owned"
        info = tarfile.TarInfo("../escaped.txt")
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))

    result = await run_restore(create_restore_job(archive, restore_dir))

    assert result.error_kind == "ExtractionError"
    assert not (temp_dir / "escaped.txt").exists()


@pytest.mark.asyncio
async def test_tar_symlink_entries_are_refused(temp_dir: Path, restore_dir: Path):
    """Only regular files and directories are restored."""
    archive = temp_dir / "links.tar"
    with tarfile.open(archive, "w") as tar:
        info = tarfile.TarInfo("passwd")
        info.type = tarfile.SYMTYPE
        info.linkname = "/etc/passwd"
        tar.addfile(info)

    result = await run_restore(create_restore_job(archive, restore_dir))

    assert result.error_kind == "ExtractionError"
    assert not (restore_dir / "passwd").exists()


@pytest.mark.asyncio
async def test_zip_absolute_path_is_refused(temp_dir: Path, restore_dir: Path):
    """Absolute entry names in zip archives are rejected."""
    archive = temp_dir / "evil.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("/tmp/absolute.txt", b"owned")

    result = await run_restore(create_restore_job(archive, restore_dir))

    assert result.error_kind == "ExtractionError"


@pytest.mark.asyncio
async def test_checkpoint_file_is_the_only_persisted_state(
    source_tree: Path, destination: Path
):
    """An incremental run leaves one artifact and one checkpoint record."""
    result = await run_backup(
        create_backup_job(source_tree, destination, "data", incremental=True)
    )

    assert result.succeeded
    assert sorted(p.name for p in destination.iterdir()) == sorted(
        [result.artifact_path.name, checkpoint_path(destination).name]
    )


# ============================================================================
# Test 6: SOURCE TREE SHAPES
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("incremental", [False, True])
@pytest.mark.parametrize("codec", list(Compression))
async def test_hard_linked_files_restore_with_their_own_bytes(
    codec: Compression,
    incremental: bool,
    source_tree: Path,
    destination: Path,
    restore_dir: Path,
):
    """
    CRITICAL: Two paths to one inode are both stored as regular files, so
    an archive that reports success can always be restored.
    """
    os.link(source_tree / "a.txt", source_tree / "sub" / "a-again.txt")

    backup = await run_backup(
        create_backup_job(
            source_tree, destination, "data", compression=codec, incremental=incremental
        )
    )
    assert backup.succeeded, backup.error_message

    restore = await run_restore(create_restore_job(backup.artifact_path, restore_dir))
    assert restore.succeeded, restore.error_message

    assert (restore_dir / "a.txt").read_bytes() == b"alpha\n"
    assert (restore_dir / "sub" / "a-again.txt").read_bytes() == b"alpha\n"
    if not incremental:
        assert read_tree(restore_dir) == read_tree(source_tree)


@pytest.mark.asyncio
@pytest.mark.parametrize("codec", list(Compression))
async def test_directory_symlink_is_not_archived(
    codec: Compression, source_tree: Path, destination: Path, restore_dir: Path
):
    """Symlinked directories are skipped like symlinked files."""
    (source_tree / "sub-link").symlink_to(source_tree / "sub", target_is_directory=True)

    backup = await run_backup(
        create_backup_job(source_tree, destination, "data", compression=codec)
    )
    assert backup.succeeded

    members = list_archive_members(backup.artifact_path)
    assert not any(m.rstrip("/").startswith("sub-link") for m in members)

    restore = await run_restore(create_restore_job(backup.artifact_path, restore_dir))
    assert restore.succeeded, restore.error_message
    assert not (restore_dir / "sub-link").exists()
    assert (restore_dir / "sub" / "b.txt").read_text() == "bravo\n"
