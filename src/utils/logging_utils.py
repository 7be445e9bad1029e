"""Helpers for emitting consistent structured logs and stage telemetry.

Only allowlisted fields are attached to records, which keeps page text and
prompt bodies out of the logs.
"""

from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from typing import Any, Dict, Literal

STRUCTURED_LOG_ALLOWED_FIELDS: frozenset[str] = frozenset(
    {
        "attempt",
        "batch_index",
        "batch_size",
        "bytes",
        "chunk_count",
        "chunk_index",
        "duration_ms",
        "error",
        "error_kind",
        "error_type",
        "event",
        "images_missing",
        "ingestion_id",
        "manifest_url",
        "page_count",
        "page_end",
        "page_start",
        "pages",
        "pages_with_images",
        "prefix",
        "project_id",
        "reason",
        "request_id",
        "skip_reason",
        "source",
        "stage",
        "status",
        "tagging",
        "text_length",
    }
)


def _filter_structured_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in fields.items()
        if key in STRUCTURED_LOG_ALLOWED_FIELDS and value is not None
    }


def structured_log(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit a log record with an `event` attribute and structured extras."""
    payload: Dict[str, Any] = {"event": event, "_structured_log": True}
    payload.update(_filter_structured_fields(fields))
    logger.log(level, event, extra=payload)


class StageMarker(AbstractContextManager["StageMarker"]):
    """Context manager that emits stage start/completion telemetry."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        stage: str,
        level: int = logging.INFO,
        **base_fields: Any,
    ) -> None:
        self._logger = logger
        self._stage = stage
        self._base_fields = _filter_structured_fields({"stage": stage, **base_fields})
        self._level = level
        self._started_at: float | None = None
        self._completion_fields: Dict[str, Any] = {}

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.perf_counter() - self._started_at

    def add_completion_fields(self, **fields: Any) -> None:
        """Record safe values to append when the stage finishes."""
        self._completion_fields.update(_filter_structured_fields(fields))

    def __enter__(self) -> "StageMarker":
        self._started_at = time.perf_counter()
        structured_log(self._logger, self._level, "pipeline_stage", status="started", **self._base_fields)
        return self

    def __exit__(self, exc_type, exc: BaseException | None, _tb) -> Literal[False]:
        payload = dict(self._base_fields)
        payload.update(self._completion_fields)
        payload["duration_ms"] = int(self.elapsed_seconds * 1000)
        if exc:
            payload["status"] = "failed"
            payload["error_type"] = exc.__class__.__name__
            payload["error_kind"] = getattr(exc, "kind", None)
            structured_log(self._logger, logging.ERROR, "pipeline_stage", **payload)
        else:
            payload["status"] = "completed"
            structured_log(self._logger, self._level, "pipeline_stage", **payload)
        return False


def stage_marker(
    logger: logging.Logger, *, stage: str, level: int = logging.INFO, **fields: Any
) -> StageMarker:
    """Convenience helper mirroring `with stage_marker(...)` usage."""
    return StageMarker(logger, stage=stage, level=level, **fields)


def log_stage_skipped(
    logger: logging.Logger,
    *,
    stage: str,
    reason: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Emit a deterministic record when a stage is bypassed."""
    structured_log(
        logger, level, "pipeline_stage", stage=stage, status="skipped", skip_reason=reason, **fields
    )


__all__ = [
    "StageMarker",
    "log_stage_skipped",
    "stage_marker",
    "structured_log",
    "STRUCTURED_LOG_ALLOWED_FIELDS",
]
