# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Change detection - Find files modified since a checkpoint.

The result scopes an incremental archive: only regular files whose
modification time is strictly after the checkpoint are selected.
"""

import asyncio
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Tuple

import structlog

from snapvault.exceptions import ValidationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class ChangeSet:
    """Files modified strictly after ``since`` (epoch seconds)."""

    since: float
    paths: Tuple[Path, ...] = ()

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[Path]:
        return iter(self.paths)

    @property
    def is_empty(self) -> bool:
        return not self.paths


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def detect_changes(
    source: Path,
    since: float = 0,
    exclude: Path | None = None,
) -> ChangeSet:
    """
    Walk ``source`` and collect regular files modified after ``since``.

    Args:
        source: Directory to scan
        since: Checkpoint instant in epoch seconds (0 selects everything)
        exclude: Directory to skip, e.g. a destination nested in the source

    Returns:
        ChangeSet with absolute, sorted paths

    Raises:
        ValidationError: If the tree cannot be read
    """
    root = Path(source).resolve()
    skip = Path(exclude).resolve() if exclude is not None else None
    changed: List[Path] = []

    def _on_error(err: OSError) -> None:
        raise ValidationError(
            f"Cannot read source tree: {err}",
            details={"stage": "detecting_changes", "path": err.filename or str(root)},
        )

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current = Path(dirpath)

        if skip is not None:
            dirnames[:] = [d for d in dirnames if not _is_within(current / d, skip)]

        for filename in filenames:
            path = current / filename
            try:
                st = path.lstat()
            except OSError as e:
                raise ValidationError(
                    f"Cannot stat {path}: {e}",
                    details={"stage": "detecting_changes", "path": str(path)},
                )

            # Regular files only; symlinks and special files are not tracked
            if not stat.S_ISREG(st.st_mode):
                continue

            if st.st_mtime > since:
                changed.append(path)

    changed.sort()

    logger.debug(
        "changes_detected",
        source=str(root),
        since=since,
        changed=len(changed),
    )

    return ChangeSet(since=since, paths=tuple(changed))


async def detect_changes_async(
    source: Path,
    since: float = 0,
    exclude: Path | None = None,
) -> ChangeSet:
    """
    Run detect_changes() in a worker thread.

    Walking a large tree blocks, so it is kept off the event loop.
    """
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, detect_changes, source, since, exclude)
