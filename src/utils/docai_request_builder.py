"""Pure helper for constructing Document AI process_document request payloads.

Kept free of Google client imports so request shape can be unit tested offline.
"""

from __future__ import annotations

from typing import Any

from src.errors import ConfigurationError

SUPPORTED_MIME_TYPES = frozenset({"application/pdf", "image/png", "image/jpeg", "image/tiff", "image/gif", "image/webp"})


def processor_path(project_id: str, location: str, processor_id: str) -> str:
    if not all(part and part.strip() for part in (project_id, location, processor_id)):
        raise ConfigurationError("project_id, location, and processor_id are required")
    return f"projects/{project_id}/locations/{location}/processors/{processor_id}"


def build_docai_request(
    document: bytes,
    mime_type: str,
    *,
    name: str,
    enable_image_quality_scores: bool = False,
    skip_human_review: bool = True,
) -> dict[str, Any]:
    """Return the request dict for ``DocumentProcessorServiceClient.process_document``."""
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise ValueError(f"Unsupported mime type for Document AI: {mime_type}")
    if not document:
        raise ValueError("Document bytes are empty")
    request: dict[str, Any] = {
        "name": name,
        "raw_document": {"content": document, "mime_type": mime_type},
        "skip_human_review": skip_human_review,
    }
    if enable_image_quality_scores:
        request["process_options"] = {"ocr_config": {"enable_image_quality_scores": True}}
    return request


__all__ = ["build_docai_request", "processor_path", "SUPPORTED_MIME_TYPES"]
