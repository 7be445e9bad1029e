"""Structured logging configuration.

Provides a JSON formatter and an ``ingestion_id`` context variable. The app
and CLI call ``configure_logging()`` at startup; the pipeline wraps each run
in ``ingestion_context(id)`` so every record emitted underneath is tagged.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

ingestion_id_var: ContextVar[str | None] = ContextVar("ingestion_id", default=None)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_STANDARD_FIELDS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        ingestion_id = ingestion_id_var.get()
        if ingestion_id:
            data["ingestion_id"] = ingestion_id
        request_id = request_id_var.get()
        if request_id:
            data["request_id"] = request_id
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_"):
                continue
            data[key] = value
        return json.dumps(data, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.INFO, force: bool = False) -> None:
    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
    elif any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.setLevel(level)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.setLevel(level)
    root.addHandler(handler)


def set_ingestion_id(ingestion_id: str | None) -> None:
    ingestion_id_var.set(ingestion_id)


def set_request_id(request_id: str | None) -> None:
    request_id_var.set(request_id)


@contextmanager
def ingestion_context(ingestion_id: str | None) -> Iterator[None]:
    token = ingestion_id_var.set(ingestion_id)
    try:
        yield
    finally:
        ingestion_id_var.reset(token)


__all__ = [
    "JsonFormatter",
    "configure_logging",
    "ingestion_context",
    "ingestion_id_var",
    "request_id_var",
    "set_ingestion_id",
    "set_request_id",
]
