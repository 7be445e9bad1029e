"""Assemble and persist the ingestion manifest.

Write order is fixed: full text, tags, then the manifest. The manifest
write is the commit point of an ingestion; nothing is written after it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from src.errors import ValidationError
from src.models.ingestion import IngestionAddress, Manifest, PageArtifact, TagRecord, utc_now_iso
from src.services.interfaces import ObjectStore
from src.utils.logging_utils import stage_marker

_LOG = logging.getLogger("manifest_builder")

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


def _json_bytes(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def check_page_sequence(artifacts: Sequence[PageArtifact], tags: Sequence[TagRecord]) -> None:
    """Pages must read 1..N in order, and tags must cover exactly the same pages."""
    pages = [artifact.page for artifact in artifacts]
    if pages != list(range(1, len(pages) + 1)):
        raise ValidationError("Page artifacts must be contiguous, unique and ordered from page 1")
    tag_pages = [record.page for record in tags]
    if tag_pages != pages:
        raise ValidationError(
            f"Tag records cover {len(tag_pages)} pages but {len(pages)} page artifacts exist"
        )


@dataclass(frozen=True, slots=True)
class PublishedManifest:
    url: str
    manifest: Manifest


class ManifestBuilder:
    def __init__(self, store: ObjectStore, *, tagging_model: str | None = None) -> None:
        self.store = store
        self.tagging_model = tagging_model

    def tags_document(self, address: IngestionAddress, tags: Sequence[TagRecord]) -> dict[str, Any]:
        return {
            "ingestionId": address.ingestion_id,
            "model": self.tagging_model,
            "pages": [record.to_dict() for record in tags],
        }

    def publish(
        self,
        address: IngestionAddress,
        source_location: str,
        full_text: str,
        artifacts: Sequence[PageArtifact],
        tags: Sequence[TagRecord],
        *,
        created_at: str | None = None,
    ) -> PublishedManifest:
        check_page_sequence(artifacts, tags)
        with stage_marker(
            _LOG, stage="publish", ingestion_id=address.ingestion_id, page_count=len(artifacts)
        ) as marker:
            full_text_obj = self.store.put(
                address.full_text_key, full_text.encode("utf-8"), TEXT_CONTENT_TYPE
            )
            tags_obj = self.store.put(
                address.tags_key, _json_bytes(self.tags_document(address, tags)), JSON_CONTENT_TYPE
            )
            manifest = Manifest(
                ingestion_id=address.ingestion_id,
                created_at=created_at or utc_now_iso(),
                source_url=source_location,
                page_count=len(artifacts),
                full_text_url=full_text_obj.url,
                tags_url=tags_obj.url,
                pages=list(artifacts),
            )
            manifest_obj = self.store.put(
                address.manifest_key, _json_bytes(manifest.to_dict()), JSON_CONTENT_TYPE
            )
            marker.add_completion_fields(
                manifest_url=manifest_obj.url, images_missing=manifest.images_missing_count
            )
        return PublishedManifest(url=manifest_obj.url, manifest=manifest)


__all__ = ["ManifestBuilder", "PublishedManifest", "check_page_sequence"]
