# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Progress events emitted by the orchestrators.

Adapters that want a progress display pass a callable; everything else
passes nothing and no events are produced.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict

import structlog

logger = structlog.get_logger()


class Stage(str, Enum):
    """Coarse-grained pipeline stages reported to adapters."""

    VALIDATE = "validate"
    DETECT = "detect"
    ARCHIVE = "archive"
    ENCRYPT = "encrypt"
    CHECKPOINT = "checkpoint"
    DECRYPT = "decrypt"
    DETECT_FORMAT = "detect_format"
    EXTRACT = "extract"


@dataclass(frozen=True)
class ProgressEvent:
    """A completed stage of one job."""

    job_id: str
    stage: Stage
    detail: Dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[ProgressEvent], None]


def emit(
    callback: ProgressCallback | None,
    job_id: str,
    stage: Stage,
    **detail: Any,
) -> None:
    """
    Deliver a stage-completion event to the adapter callback, if any.

    A failing callback is logged and otherwise ignored so that a broken
    progress display never changes the outcome of a job.
    """
    if callback is None:
        return

    try:
        callback(ProgressEvent(job_id=job_id, stage=stage, detail=detail))
    except Exception as e:
        logger.warning(
            "progress_callback_failed",
            job_id=job_id,
            stage=stage.value,
            error=str(e),
        )
