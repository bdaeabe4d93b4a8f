# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
snapvault Checkpoint Store - Last successful incremental backup per destination.

Each destination directory holds one plain-text record with the UNIX epoch
(seconds) of its last successful incremental backup. The record only scopes
change detection; it is advisory and not a source of truth for data
integrity.

There is no locking. Jobs targeting the same destination must be
serialized by the caller.
"""

from pathlib import Path

import aiofiles
import structlog

from snapvault.exceptions import CheckpointError

logger = structlog.get_logger()

CHECKPOINT_FILENAME = ".snapvault_checkpoint"


def checkpoint_path(destination: Path) -> Path:
    """Return the checkpoint record location for a destination."""
    return Path(destination) / CHECKPOINT_FILENAME


async def read_checkpoint(destination: Path) -> int | None:
    """
    Read the checkpoint for a destination.

    An unreadable or malformed record is logged and treated as absent,
    which widens the next incremental backup to the whole tree.

    Args:
        destination: Destination directory

    Returns:
        Epoch seconds, or None if no checkpoint exists
    """
    path = checkpoint_path(destination)

    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            raw = (await f.read()).strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("checkpoint_unreadable", path=str(path), error=str(e))
        return None

    try:
        value = int(raw)
    except ValueError:
        logger.warning("checkpoint_malformed", path=str(path), content=raw[:64])
        return None

    if value < 0:
        logger.warning("checkpoint_malformed", path=str(path), content=raw[:64])
        return None

    return value


async def write_checkpoint(destination: Path, epoch: int) -> Path:
    """
    Record a checkpoint for a destination, replacing any previous one.

    The record is written atomically (write to temp, then rename).

    Args:
        destination: Destination directory
        epoch: UNIX epoch seconds

    Returns:
        Path to the checkpoint record
    """
    path = checkpoint_path(destination)
    temp_path = path.with_name(path.name + ".tmp")

    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(f"{int(epoch)}\n")
        temp_path.replace(path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise CheckpointError(
            f"Failed to write checkpoint: {e}",
            details={"stage": "updating_checkpoint", "path": str(path)},
        )

    logger.debug("checkpoint_written", path=str(path), epoch=int(epoch))

    return path


async def clear_checkpoint(destination: Path) -> bool:
    """
    Remove the checkpoint so the next incremental backup archives everything.

    Returns:
        True if a record was removed
    """
    path = checkpoint_path(destination)
    if not path.exists():
        return False
    path.unlink()
    logger.info("checkpoint_cleared", path=str(path))
    return True
