"""Exception hierarchy for the corpus ingestion pipeline.

Every failure surfaced by the pipeline is an ``IngestionError`` carrying a
stable ``kind`` string. The HTTP layer and the CLI map the kind to a status
code / exit code; nothing else inspects exception classes.
"""
from __future__ import annotations


class IngestionError(Exception):
    """Base class for all pipeline failures."""

    kind = "ingestion_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class ConfigurationError(IngestionError):
    """Missing or malformed credentials / endpoints. Raised before any network call."""

    kind = "configuration_error"


class SourceFetchError(IngestionError):
    """Source document unreachable or answered with a non-success status."""

    kind = "source_fetch_error"


class MalformedSourceError(IngestionError):
    """Source bytes cannot be parsed into pages."""

    kind = "malformed_source"


class ExternalServiceError(IngestionError):
    """OCR, storage or text-generation call failed or returned an unusable shape."""

    kind = "external_service_error"


class ValidationError(IngestionError):
    """Text-generation output failed strict structural parsing."""

    kind = "validation_error"


__all__ = [
    "IngestionError",
    "ConfigurationError",
    "SourceFetchError",
    "MalformedSourceError",
    "ExternalServiceError",
    "ValidationError",
]
