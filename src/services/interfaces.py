"""Capabilities the ingestion core consumes, as structural protocols."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from src.models.ingestion import OcrChunkResult


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    url: str


class OcrClient(Protocol):
    """Document OCR with a per-call page ceiling."""

    def process(self, document: bytes, mime_type: str) -> OcrChunkResult: ...


class ObjectStore(Protocol):
    """Publicly readable object storage with hierarchical keys."""

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject: ...


class TextGenerator(Protocol):
    """Free-form text generation; output carries no structural guarantee."""

    def generate(self, prompt: str) -> str: ...


class MetricsClient(Protocol):
    """Interface for emitting metrics to Prometheus (or nowhere)."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None: ...

    def increment(self, name: str, amount: int = 1, **labels: str) -> None: ...


__all__ = ["StoredObject", "OcrClient", "ObjectStore", "TextGenerator", "MetricsClient"]
