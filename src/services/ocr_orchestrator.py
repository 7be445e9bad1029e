"""Drive chunked OCR across a whole source document.

Chunks are planned, split and submitted strictly in order, one at a time.
Each chunk's pages are renumbered into global page numbers before anything
downstream sees them. A chunk failure aborts the run and no later chunk is
requested.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterator

from src.errors import ExternalServiceError
from src.models.ingestion import OcrChunk, OcrPageRecord, PageRange, SourceDocument
from src.services.chunk_planner import plan_chunks
from src.services.interfaces import MetricsClient, OcrClient
from src.services.metrics import NullMetrics
from src.services.page_text import extract_page_text
from src.utils.logging_utils import stage_marker, structured_log
from src.utils.pdf_splitter import open_pdf, split_document

_LOG = logging.getLogger("ocr_orchestrator")
CHUNK_TEXT_SEPARATOR = "\n\n"


@dataclass(frozen=True, slots=True)
class OcrDocument:
    full_text: str
    pages: list[OcrPageRecord]
    chunks: list[OcrChunk]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_text(self, record: OcrPageRecord) -> str:
        return extract_page_text(self.chunks[record.chunk_index].text, record.text_segments)


def join_chunk_texts(chunks: list[OcrChunk]) -> str:
    return CHUNK_TEXT_SEPARATOR.join(chunk.text for chunk in chunks if chunk.text)


class OcrOrchestrator:
    """Turns a ``SourceDocument`` into ordered, globally numbered OCR pages."""

    def __init__(
        self,
        ocr_client: OcrClient,
        *,
        max_pages_per_call: int,
        metrics: MetricsClient | None = None,
    ) -> None:
        if max_pages_per_call < 1:
            raise ValueError("max_pages_per_call must be >= 1")
        self.ocr_client = ocr_client
        self.max_pages_per_call = max_pages_per_call
        self.metrics = metrics or NullMetrics()

    def iter_chunks(self, source: SourceDocument) -> Iterator[OcrChunk]:
        reader = open_pdf(source)
        total_pages = len(reader.pages)
        ranges = plan_chunks(total_pages, self.max_pages_per_call)
        structured_log(_LOG, logging.INFO, "ocr_plan", page_count=total_pages, chunk_count=len(ranges))
        for index, page_range in enumerate(ranges):
            yield self._process_chunk(source, reader, index, page_range, len(ranges))

    def run(self, source: SourceDocument) -> OcrDocument:
        chunks = list(self.iter_chunks(source))
        pages = [page for chunk in chunks for page in chunk.pages]
        return OcrDocument(full_text=join_chunk_texts(chunks), pages=pages, chunks=chunks)

    def _process_chunk(
        self,
        source: SourceDocument,
        reader,
        index: int,
        page_range: PageRange,
        chunk_count: int,
    ) -> OcrChunk:
        with stage_marker(
            _LOG,
            stage="ocr_chunk",
            chunk_index=index,
            chunk_count=chunk_count,
            page_start=page_range.start + 1,
            page_end=page_range.end,
        ) as marker:
            chunk_bytes = split_document(source, page_range, reader=reader)
            started = time.perf_counter()
            result = self.ocr_client.process(chunk_bytes, source.media_type)
            self.metrics.observe_latency("ocr_chunk_seconds", time.perf_counter() - started, stage="ocr")
            self.metrics.increment("ocr_chunks_total", stage="ocr")

            if len(result.pages) != len(page_range):
                raise ExternalServiceError(
                    f"OCR chunk {index} returned {len(result.pages)} pages for a "
                    f"{len(page_range)}-page request (pages {page_range.start + 1}-{page_range.end})"
                )
            local_indices = sorted(page.local_index for page in result.pages)
            if local_indices != list(range(len(page_range))):
                raise ExternalServiceError(f"OCR chunk {index} returned inconsistent page indices")

            pages = [
                OcrPageRecord(
                    page_number=page_range.start + page.local_index + 1,
                    chunk_index=index,
                    text_segments=page.text_segments,
                    image=page.image,
                )
                for page in sorted(result.pages, key=lambda p: p.local_index)
            ]
            marker.add_completion_fields(pages=len(pages), text_length=len(result.text))
        return OcrChunk(index=index, page_range=page_range, text=result.text, pages=pages)


__all__ = ["OcrOrchestrator", "OcrDocument", "join_chunk_texts", "CHUNK_TEXT_SEPARATOR"]
