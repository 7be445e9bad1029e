"""Batched per-page tagging through the text-generation capability.

Tagging is strict: a batch whose response is not a JSON array carrying
exactly the submitted page numbers fails the ingestion. Inside a valid
batch, each record is re-coerced to the fixed ``TagRecord`` shape so sparse
answers degrade to empty lists and zero scores.
"""

from __future__ import annotations

import json
import logging
import math
import re
import textwrap
from typing import Any, Iterable, Sequence

from src.config import PipelineSettings
from src.errors import ValidationError
from src.models.ingestion import ENTITY_KINDS, SEMANTIC_DOMAINS, TagRecord
from src.services.interfaces import MetricsClient, TextGenerator
from src.services.metrics import NullMetrics
from src.utils.logging_utils import log_stage_skipped, stage_marker

_LOG = logging.getLogger("page_tagger")

MAX_TAGS_PER_PAGE = 12
MAX_ENTITIES_PER_KIND = 24
NO_GENERATOR_NOTE = "tagging skipped: no text-generation credential configured"

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n(?P<body>.*)\n\s*```$", re.DOTALL)

TAGGING_PROMPT = textwrap.dedent(
    """
    You label pages of a document for a searchable corpus.
    For EVERY page below return one JSON object with these keys:
    - page: the integer page number exactly as given.
    - tags: array of at most {max_tags} short lowercase topic tokens.
    - entities: object with arrays "characters", "locations", "factions", "objects" naming entities that appear on the page.
    - domainAffinity: object mapping each of {domains} to a number between 0 and 1.
    - posterCandidate: true when the page is visually striking enough to illustrate the whole document.
    - confidence: number between 0 and 1 describing how sure you are about this page.
    Requirements:
    * Return ONE JSON array with exactly {count} objects, one per page, in the order given.
    * Do not invent pages and do not skip pages, even blank ones.
    * Output MUST be valid JSON. No markdown or commentary outside the array.
    """
).strip()


def _batched(items: Sequence[tuple[int, str]], size: int) -> Iterable[Sequence[tuple[int, str]]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def build_tagging_prompt(batch: Sequence[tuple[int, str]], excerpt_chars: int) -> str:
    header = TAGGING_PROMPT.format(
        max_tags=MAX_TAGS_PER_PAGE,
        domains=", ".join(f'"{domain}"' for domain in SEMANTIC_DOMAINS),
        count=len(batch),
    )
    sections = [header, ""]
    for page, text in batch:
        excerpt = text[:excerpt_chars].strip() or "(blank page)"
        sections.append(f"=== PAGE {page} ===\n{excerpt}")
    return "\n".join(sections)


def strip_code_fence(raw: str) -> str:
    text = raw.strip()
    match = _FENCE_RE.match(text)
    return match.group("body").strip() if match else text


def _string_list(value: Any, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    seen: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        token = item.strip()
        if token and token not in seen:
            seen.append(token)
        if len(seen) >= limit:
            break
    return seen


def _unit_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    number = float(value)
    if not math.isfinite(number):
        return 0.0
    return min(1.0, max(0.0, number))


def _page_number(item: Any) -> int:
    if not isinstance(item, dict):
        raise ValidationError("Tagging response element is not an object")
    page = item.get("page")
    if isinstance(page, bool) or not isinstance(page, int):
        raise ValidationError(f"Tagging response element has non-integer page: {page!r}")
    return page


def coerce_tag_record(item: dict[str, Any]) -> TagRecord:
    """Re-shape one parsed response object into a ``TagRecord``."""
    entities_raw = item.get("entities")
    entities_raw = entities_raw if isinstance(entities_raw, dict) else {}
    affinity_raw = item.get("domainAffinity")
    affinity_raw = affinity_raw if isinstance(affinity_raw, dict) else {}
    poster = item.get("posterCandidate")
    return TagRecord(
        page=_page_number(item),
        tags=_string_list(item.get("tags"), MAX_TAGS_PER_PAGE),
        entities={kind: _string_list(entities_raw.get(kind), MAX_ENTITIES_PER_KIND) for kind in ENTITY_KINDS},
        domain_affinity={domain: _unit_float(affinity_raw.get(domain)) for domain in SEMANTIC_DOMAINS},
        poster_candidate=poster is True,
        confidence=_unit_float(item.get("confidence")),
    )


def parse_tagging_response(raw: str, expected_pages: Sequence[int]) -> list[TagRecord]:
    """Strictly parse one batch response and return records in submitted order."""
    try:
        payload = json.loads(strip_code_fence(raw or ""))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Tagging response is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, list):
        raise ValidationError(f"Tagging response must be a JSON array, got {type(payload).__name__}")
    if len(payload) != len(expected_pages):
        raise ValidationError(
            f"Tagging response has {len(payload)} records for {len(expected_pages)} submitted pages"
        )
    records: dict[int, TagRecord] = {}
    for item in payload:
        record = coerce_tag_record(item)
        if record.page in records:
            raise ValidationError(f"Tagging response repeats page {record.page}")
        records[record.page] = record
    if set(records) != set(expected_pages):
        missing = sorted(set(expected_pages) - set(records))
        unexpected = sorted(set(records) - set(expected_pages))
        raise ValidationError(f"Tagging response page mismatch: missing={missing} unexpected={unexpected}")
    return [records[page] for page in expected_pages]


class PageTagger:
    def __init__(
        self,
        generator: TextGenerator | None,
        settings: PipelineSettings,
        *,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.generator = generator
        self.batch_size = settings.tag_batch_size
        self.excerpt_chars = settings.tag_excerpt_chars
        self.metrics = metrics or NullMetrics()

    @property
    def enabled(self) -> bool:
        return self.generator is not None

    def tag_pages(self, pages: Sequence[tuple[int, str]]) -> list[TagRecord]:
        if self.generator is None:
            log_stage_skipped(_LOG, stage="tagging", reason="no_generator", pages=len(pages))
            return [TagRecord.placeholder(page, NO_GENERATOR_NOTE) for page, _ in pages]

        records: list[TagRecord] = []
        for batch_index, batch in enumerate(_batched(list(pages), self.batch_size)):
            with stage_marker(_LOG, stage="tag_batch", batch_index=batch_index, batch_size=len(batch)):
                prompt = build_tagging_prompt(batch, self.excerpt_chars)
                raw = self.generator.generate(prompt)
                records.extend(parse_tagging_response(raw, [page for page, _ in batch]))
            self.metrics.increment("tag_batches_total", stage="tagging")
        return records


__all__ = [
    "PageTagger",
    "build_tagging_prompt",
    "coerce_tag_record",
    "parse_tagging_response",
    "strip_code_fence",
    "MAX_TAGS_PER_PAGE",
    "NO_GENERATOR_NOTE",
]
