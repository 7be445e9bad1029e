"""Typed records flowing through the ingestion pipeline.

Two page-number spaces exist and never mix:
 - ``ChunkPageRecord.local_index``: zero-based position inside one OCR chunk;
 - ``OcrPageRecord.page_number`` / ``PageArtifact.page``: one-based position in
   the original document.
Only ``OcrOrchestrator`` converts between them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

PDF_MEDIA_TYPE = "application/pdf"
ENTITY_KINDS = ("characters", "locations", "factions", "objects")
SEMANTIC_DOMAINS = ("overview", "characters", "world", "factions", "objects", "plot")


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class SourceDocument:
    data: bytes = field(repr=False)
    media_type: str = PDF_MEDIA_TYPE
    location: str = ""

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class PageRange:
    """Half-open interval ``[start, end)`` of zero-based page indices."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"Invalid page range [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    def within(self, total_pages: int) -> bool:
        return self.end <= total_pages

    def indices(self) -> range:
        return range(self.start, self.end)


@dataclass(frozen=True, slots=True)
class OcrImage:
    content: bytes = field(repr=False)
    mime_type: str = "image/png"
    width: int = 0
    height: int = 0


@dataclass(frozen=True, slots=True)
class ChunkPageRecord:
    """A page exactly as the OCR capability reported it for one chunk."""

    local_index: int
    text_segments: tuple[tuple[int, int], ...] = ()
    image: OcrImage | None = None


@dataclass(frozen=True, slots=True)
class OcrChunkResult:
    text: str
    pages: list[ChunkPageRecord]


@dataclass(frozen=True, slots=True)
class OcrPageRecord:
    page_number: int
    chunk_index: int
    text_segments: tuple[tuple[int, int], ...] = ()
    image: OcrImage | None = None


@dataclass(frozen=True, slots=True)
class OcrChunk:
    index: int
    page_range: PageRange
    text: str
    pages: list[OcrPageRecord]


@dataclass(frozen=True, slots=True)
class PageArtifact:
    page: int
    text: str = field(repr=False)
    image_url: str | None
    width: int
    height: int
    page_text_url: str

    def to_manifest_entry(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "imageUrl": self.image_url,
            "width": self.width,
            "height": self.height,
            "pageTextUrl": self.page_text_url,
        }


@dataclass(frozen=True, slots=True)
class TagRecord:
    page: int
    tags: list[str] = field(default_factory=list)
    entities: dict[str, list[str]] = field(
        default_factory=lambda: {kind: [] for kind in ENTITY_KINDS}
    )
    domain_affinity: dict[str, float] = field(
        default_factory=lambda: {domain: 0.0 for domain in SEMANTIC_DOMAINS}
    )
    poster_candidate: bool = False
    confidence: float = 0.0
    note: str | None = None

    @classmethod
    def placeholder(cls, page: int, note: str) -> "TagRecord":
        return cls(page=page, note=note)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "page": self.page,
            "tags": list(self.tags),
            "entities": {kind: list(self.entities.get(kind, [])) for kind in ENTITY_KINDS},
            "domainAffinity": {
                domain: float(self.domain_affinity.get(domain, 0.0)) for domain in SEMANTIC_DOMAINS
            },
            "posterCandidate": self.poster_candidate,
            "confidence": self.confidence,
        }
        if self.note:
            payload["note"] = self.note
        return payload


@dataclass(frozen=True, slots=True)
class IngestionAddress:
    ingestion_id: str
    prefix: str
    project_id: str

    def key(self, *parts: str) -> str:
        return "/".join((self.prefix, *parts))

    def page_image_key(self, page: int) -> str:
        return self.key("pages", f"page-{page:03d}.png")

    def page_text_key(self, page: int) -> str:
        return self.key("pages", f"page-{page:03d}.txt")

    @property
    def full_text_key(self) -> str:
        return self.key("fullText.txt")

    @property
    def tags_key(self) -> str:
        return self.key("tags.json")

    @property
    def manifest_key(self) -> str:
        return self.key("manifest.json")


@dataclass(frozen=True, slots=True)
class Manifest:
    ingestion_id: str
    created_at: str
    source_url: str
    page_count: int
    full_text_url: str
    tags_url: str
    pages: list[PageArtifact]

    def __post_init__(self) -> None:
        if len(self.pages) != self.page_count:
            raise ValueError(
                f"Manifest lists {len(self.pages)} pages but pageCount is {self.page_count}"
            )

    @property
    def page_images_count(self) -> int:
        return sum(1 for page in self.pages if page.image_url is not None)

    @property
    def images_missing_count(self) -> int:
        return self.page_count - self.page_images_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingestionId": self.ingestion_id,
            "createdAt": self.created_at,
            "sourceUrl": self.source_url,
            "pageCount": self.page_count,
            "fullTextUrl": self.full_text_url,
            "tagsUrl": self.tags_url,
            "pageImagesCount": self.page_images_count,
            "imagesMissingCount": self.images_missing_count,
            "pages": [page.to_manifest_entry() for page in self.pages],
        }


@dataclass(frozen=True, slots=True)
class IngestionSuccess:
    ingestion_id: str
    project_id: str
    prefix: str
    manifest_url: str
    full_text_url: str
    tags_url: str
    page_count: int
    page_images_count: int
    images_missing_count: int
    ok: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "ingestionId": self.ingestion_id,
            "projectId": self.project_id,
            "prefix": self.prefix,
            "manifestUrl": self.manifest_url,
            "fullTextUrl": self.full_text_url,
            "tagsUrl": self.tags_url,
            "pageCount": self.page_count,
            "pageImagesCount": self.page_images_count,
            "imagesMissingCount": self.images_missing_count,
        }


@dataclass(frozen=True, slots=True)
class IngestionFailure:
    kind: str
    message: str
    ok: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": {"kind": self.kind, "message": self.message}}


IngestionOutcome = IngestionSuccess | IngestionFailure


def segments_from_mapping(raw: Any) -> tuple[tuple[int, int], ...]:
    """Coerce ``[{"start_index": .., "end_index": ..}]`` style payloads into int pairs.

    Document AI omits ``start_index`` when it is zero, and JSON renderings of
    int64 fields arrive as strings. Entries that cannot be read as integers
    are dropped here; bounds checking happens at extraction time.
    """
    pairs: list[tuple[int, int]] = []
    for segment in raw or []:
        if isinstance(segment, Mapping):
            start = segment.get("start_index", segment.get("startIndex", 0))
            end = segment.get("end_index", segment.get("endIndex"))
        elif isinstance(segment, (tuple, list)) and len(segment) == 2:
            start, end = segment
        else:
            start = getattr(segment, "start_index", 0)
            end = getattr(segment, "end_index", None)
        try:
            pairs.append((int(start or 0), int(end)))
        except (TypeError, ValueError, OverflowError):
            continue
    return tuple(pairs)


__all__ = [
    "PDF_MEDIA_TYPE",
    "ENTITY_KINDS",
    "SEMANTIC_DOMAINS",
    "SourceDocument",
    "PageRange",
    "OcrImage",
    "ChunkPageRecord",
    "OcrChunkResult",
    "OcrPageRecord",
    "OcrChunk",
    "PageArtifact",
    "TagRecord",
    "IngestionAddress",
    "Manifest",
    "IngestionSuccess",
    "IngestionFailure",
    "IngestionOutcome",
    "segments_from_mapping",
    "utc_now_iso",
]
