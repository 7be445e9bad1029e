"""Recover one page's text from its OCR offset segments."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable

_WHITESPACE_RE = re.compile(r"\s+")


def _as_index(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def extract_page_text(chunk_text: str, segments: Iterable[Any]) -> str:
    """Concatenate ``chunk_text[start:end]`` for each valid segment, whitespace-normalised.

    ``segments`` index into ``chunk_text`` (the text of the chunk the page was
    OCR'd in, not the whole-document concatenation). Segments that are not
    ``0 <= start < end <= len(chunk_text)`` are skipped.
    """
    text = chunk_text or ""
    limit = len(text)
    pieces: list[str] = []
    for segment in segments or ():
        try:
            raw_start, raw_end = segment
        except (TypeError, ValueError):
            continue
        start, end = _as_index(raw_start), _as_index(raw_end)
        if start is None or end is None:
            continue
        if start < 0 or end <= start or end > limit:
            continue
        pieces.append(text[start:end])
    return _WHITESPACE_RE.sub(" ", "".join(pieces)).strip()


__all__ = ["extract_page_text"]
