"""Deterministic ingestion identifiers and storage prefixes.

The identifier is derived from the source location (or a caller-supplied
key), never from a clock, so re-ingesting a source overwrites its previous
artifacts in place.
"""

from __future__ import annotations

import hashlib
import re

from src.models.ingestion import IngestionAddress

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")
MAX_KEY_LENGTH = 64
ID_PREFIX = "ingest-"
HASH_CHARS = 16


def sanitize_key(raw: str, *, label: str) -> str:
    cleaned = _UNSAFE_RE.sub("-", (raw or "").strip()).strip(".-")[:MAX_KEY_LENGTH]
    if not cleaned:
        raise ValueError(f"{label} {raw!r} contains no usable characters")
    return cleaned


def source_digest(source_location: str) -> str:
    return hashlib.sha256(source_location.strip().encode("utf-8")).hexdigest()


def address_source(
    source_location: str,
    *,
    override: str | None = None,
    project_id: str = "default",
    root: str = "corpus",
) -> IngestionAddress:
    """Map a source (or explicit key) to ``{root}/{project}/{ingestion_id}``."""
    if override is not None and override.strip():
        ingestion_id = sanitize_key(override, label="Ingestion key")
    else:
        if not (source_location or "").strip():
            raise ValueError("source_location is required when no ingestion key is given")
        ingestion_id = ID_PREFIX + source_digest(source_location)[:HASH_CHARS]
    project = sanitize_key(project_id, label="Project id")
    prefix = "/".join(part for part in (root.strip("/"), project, ingestion_id) if part)
    return IngestionAddress(ingestion_id=ingestion_id, prefix=prefix, project_id=project)


__all__ = ["address_source", "sanitize_key", "source_digest"]
