# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for snapvault tests.

Provides temporary source/destination trees, a strong key, and helpers
for comparing directory contents.
"""

import os
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Dict, Generator

import pytest
import structlog

# Satisfies every key strength rule
STRONG_KEY = "Correct-Horse-9"

# Fixed instants used to make incremental tests independent of the clock
OLD_MTIME = 1_000_000_000
CHECKPOINT_EPOCH = 1_100_000_000
NEW_MTIME = 1_200_000_000

FIXED_TIME = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo logging configuration done by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def source_tree(temp_dir: Path) -> Path:
    """
    Create a small source tree:

        a.txt
        with space.txt
        empty.bin          (zero bytes)
        sub/b.txt
        sub/deeper/c.dat
        hollow/            (empty directory)
    """
    root = temp_dir / "source"
    (root / "sub" / "deeper").mkdir(parents=True)
    (root / "hollow").mkdir()

    (root / "a.txt").write_text("alpha\n")
    (root / "with space.txt").write_text("spaced out\n")
    (root / "empty.bin").write_bytes(b"")
    (root / "sub" / "b.txt").write_text("bravo\n")
    (root / "sub" / "deeper" / "c.dat").write_bytes(bytes(range(256)) * 64)

    return root


@pytest.fixture
def destination(temp_dir: Path) -> Path:
    """Create an empty destination directory."""
    path = temp_dir / "backups"
    path.mkdir()
    return path


@pytest.fixture
def restore_dir(temp_dir: Path) -> Path:
    """Path for restored files (not created)."""
    return temp_dir / "restored"


def set_mtime(root: Path, epoch: int) -> None:
    """Set the mtime of every regular file under root."""
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            os.utime(Path(dirpath) / filename, (epoch, epoch))


def read_tree(root: Path) -> Dict[str, bytes | None]:
    """
    Snapshot a directory: relative path -> file bytes (None for directories).
    """
    snapshot: Dict[str, bytes | None] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        for dirname in dirnames:
            snapshot[(current / dirname).relative_to(root).as_posix()] = None
        for filename in filenames:
            path = current / filename
            snapshot[path.relative_to(root).as_posix()] = path.read_bytes()
    return snapshot
