"""Split a document's page span into OCR-sized chunks."""

from __future__ import annotations

from src.models.ingestion import PageRange


def plan_chunks(total_pages: int, max_pages: int) -> list[PageRange]:
    """Return ascending, disjoint ranges covering ``[0, total_pages)``, each ``<= max_pages`` long.

    Downstream page numbering relies on this order matching document order.
    """
    if max_pages < 1:
        raise ValueError("max_pages must be >= 1")
    if total_pages < 0:
        raise ValueError("total_pages must be >= 0")
    return [
        PageRange(start, min(start + max_pages, total_pages))
        for start in range(0, total_pages, max_pages)
    ]


__all__ = ["plan_chunks"]
