"""pypdf-backed page counting and sub-document extraction.

Pages are copied as whole page objects (content streams, fonts, images and
other resources travel with them); only page membership changes.
"""
from __future__ import annotations

import io
import logging

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from src.errors import MalformedSourceError
from src.models.ingestion import PDF_MEDIA_TYPE, PageRange, SourceDocument

_LOG = logging.getLogger("pdf_splitter")
_PDF_MAGIC = b"%PDF-"


def _open_reader(source: SourceDocument) -> PdfReader:
    if source.media_type != PDF_MEDIA_TYPE:
        raise MalformedSourceError(f"Unsupported media type {source.media_type!r}; expected {PDF_MEDIA_TYPE}")
    if not source.data.lstrip()[:5].startswith(_PDF_MAGIC):
        raise MalformedSourceError("Source does not appear to be a PDF (missing %PDF- header)")
    try:
        reader = PdfReader(io.BytesIO(source.data))
        if reader.is_encrypted and not reader.decrypt(""):
            raise MalformedSourceError("Source PDF is encrypted")
        # Touch the page tree so structural damage surfaces here, not mid-split.
        len(reader.pages)
    except MalformedSourceError:
        raise
    except (PdfReadError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise MalformedSourceError(f"Failed to parse PDF: {exc}") from exc
    return reader


def count_pages(source: SourceDocument) -> int:
    return len(_open_reader(source).pages)


def split_document(
    source: SourceDocument,
    page_range: PageRange,
    *,
    reader: PdfReader | None = None,
) -> bytes:
    """Return a standalone PDF holding exactly ``page_range`` of ``source``.

    ``reader`` lets callers reuse one parsed document across many chunks.
    """
    reader = reader or _open_reader(source)
    total_pages = len(reader.pages)
    if not page_range.within(total_pages):
        raise MalformedSourceError(
            f"Page range [{page_range.start}, {page_range.end}) exceeds document page count {total_pages}"
        )
    writer = PdfWriter()
    try:
        for index in page_range.indices():
            writer.add_page(reader.pages[index])
        buffer = io.BytesIO()
        writer.write(buffer)
    except (PdfReadError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise MalformedSourceError(
            f"Failed to extract pages [{page_range.start}, {page_range.end}): {exc}"
        ) from exc
    _LOG.debug(
        "pdf_split_chunk",
        extra={"page_start": page_range.start, "page_end": page_range.end, "bytes": buffer.tell()},
    )
    return buffer.getvalue()


def open_pdf(source: SourceDocument) -> PdfReader:
    """Parse ``source`` once for repeated ``split_document`` calls."""
    return _open_reader(source)


__all__ = ["count_pages", "split_document", "open_pdf"]
