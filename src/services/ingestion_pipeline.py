"""End-to-end ingestion: fetch, OCR, per-page artifacts, tagging, manifest.

``IngestionPipeline.run`` raises ``IngestionError`` subclasses; ``ingest``
wraps it and always returns an ``IngestionOutcome``. Chunks are processed
one after another. Inside a chunk, each page's text and image are prepared
and uploaded on a thread pool, and results are collected in page order.
"""

from __future__ import annotations

import contextvars
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from src.config import PipelineSettings
from src.errors import IngestionError, SourceFetchError, ValidationError
from src.logging_setup import ingestion_context
from src.models.ingestion import (
    IngestionAddress,
    IngestionFailure,
    IngestionOutcome,
    IngestionSuccess,
    OcrChunk,
    OcrPageRecord,
    PageArtifact,
    SourceDocument,
)
from src.services.content_addresser import address_source
from src.services.image_normalizer import PNG_MEDIA_TYPE, normalize_page_image
from src.services.interfaces import MetricsClient, ObjectStore, OcrClient, TextGenerator
from src.services.manifest_builder import ManifestBuilder, TEXT_CONTENT_TYPE
from src.services.metrics import NullMetrics
from src.services.ocr_orchestrator import OcrOrchestrator, join_chunk_texts
from src.services.page_tagger import PageTagger
from src.services.page_text import extract_page_text
from src.services.source_fetcher import SourceFetcher
from src.utils.logging_utils import stage_marker, structured_log

_LOG = logging.getLogger("ingestion_pipeline")


class IngestionPipeline:
    def __init__(
        self,
        *,
        fetcher: SourceFetcher,
        ocr_client: OcrClient,
        store: ObjectStore,
        settings: PipelineSettings,
        generator: TextGenerator | None = None,
        metrics: MetricsClient | None = None,
        root_prefix: str = "corpus",
        default_project_id: str = "default",
        tagging_model: str | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.settings = settings
        self.metrics = metrics or NullMetrics()
        self.root_prefix = root_prefix
        self.default_project_id = default_project_id
        self.orchestrator = OcrOrchestrator(
            ocr_client, max_pages_per_call=settings.max_pages_per_call, metrics=self.metrics
        )
        self.tagger = PageTagger(generator, settings, metrics=self.metrics)
        self.manifest_builder = ManifestBuilder(
            store, tagging_model=tagging_model if generator is not None else None
        )

    def address(
        self,
        source_location: str,
        *,
        project_id: Optional[str] = None,
        ingestion_key: Optional[str] = None,
    ) -> IngestionAddress:
        if not (source_location or "").strip():
            raise SourceFetchError("Source location is empty")
        try:
            return address_source(
                source_location,
                override=ingestion_key,
                project_id=project_id or self.default_project_id,
                root=self.root_prefix,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def ingest(
        self,
        source_location: str,
        *,
        project_id: Optional[str] = None,
        ingestion_key: Optional[str] = None,
    ) -> IngestionOutcome:
        try:
            return self.run(source_location, project_id=project_id, ingestion_key=ingestion_key)
        except IngestionError as exc:
            return IngestionFailure(kind=exc.kind, message=exc.message)

    def run(
        self,
        source_location: str,
        *,
        project_id: Optional[str] = None,
        ingestion_key: Optional[str] = None,
    ) -> IngestionSuccess:
        address = self.address(source_location, project_id=project_id, ingestion_key=ingestion_key)
        started = time.perf_counter()
        self.metrics.increment("ingestions_started_total", stage="ingest")
        with ingestion_context(address.ingestion_id):
            structured_log(
                _LOG,
                logging.INFO,
                "ingestion_started",
                ingestion_id=address.ingestion_id,
                project_id=address.project_id,
                prefix=address.prefix,
            )
            try:
                source = self.fetcher.fetch(source_location)
                result = self.run_document(source, address)
            except IngestionError as exc:
                self.metrics.increment("ingestions_failed_total", stage="ingest")
                structured_log(
                    _LOG,
                    logging.ERROR,
                    "ingestion_failed",
                    ingestion_id=address.ingestion_id,
                    error_kind=exc.kind,
                    error=exc.message,
                )
                raise
            self.metrics.increment("ingestions_succeeded_total", stage="ingest")
            self.metrics.observe_latency("ingestion_seconds", time.perf_counter() - started, stage="ingest")
            structured_log(
                _LOG,
                logging.INFO,
                "ingestion_completed",
                ingestion_id=address.ingestion_id,
                page_count=result.page_count,
                images_missing=result.images_missing_count,
                manifest_url=result.manifest_url,
            )
            return result

    def run_document(self, source: SourceDocument, address: IngestionAddress) -> IngestionSuccess:
        """Ingest already-fetched bytes under ``address``."""
        artifacts: list[PageArtifact] = []
        texts: list[tuple[int, str]] = []
        chunks: list[OcrChunk] = []
        with ThreadPoolExecutor(
            max_workers=self.settings.page_workers, thread_name_prefix="page"
        ) as executor:
            for chunk in self.orchestrator.iter_chunks(source):
                chunks.append(chunk)
                chunk_artifacts = self._build_chunk_artifacts(executor, chunk, address)
                artifacts.extend(chunk_artifacts)
                texts.extend((artifact.page, artifact.text) for artifact in chunk_artifacts)

        with stage_marker(_LOG, stage="tagging", pages=len(texts), tagging=self.tagger.enabled):
            tags = self.tagger.tag_pages(texts)

        published = self.manifest_builder.publish(
            address, source.location, join_chunk_texts(chunks), artifacts, tags
        )
        manifest = published.manifest
        return IngestionSuccess(
            ingestion_id=address.ingestion_id,
            project_id=address.project_id,
            prefix=address.prefix,
            manifest_url=published.url,
            full_text_url=manifest.full_text_url,
            tags_url=manifest.tags_url,
            page_count=manifest.page_count,
            page_images_count=manifest.page_images_count,
            images_missing_count=manifest.images_missing_count,
        )

    def _build_chunk_artifacts(
        self, executor: ThreadPoolExecutor, chunk: OcrChunk, address: IngestionAddress
    ) -> list[PageArtifact]:
        with stage_marker(_LOG, stage="pages", chunk_index=chunk.index, pages=len(chunk.pages)) as marker:
            futures: list[Future[PageArtifact]] = [
                executor.submit(
                    contextvars.copy_context().run, self._build_page_artifact, chunk.text, record, address
                )
                for record in chunk.pages
            ]
            artifacts: list[PageArtifact] = []
            try:
                for future in futures:
                    artifacts.append(future.result())
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
            marker.add_completion_fields(
                pages_with_images=sum(1 for artifact in artifacts if artifact.image_url)
            )
        return artifacts

    def _build_page_artifact(
        self, chunk_text: str, record: OcrPageRecord, address: IngestionAddress
    ) -> PageArtifact:
        text = extract_page_text(chunk_text, record.text_segments)
        image_url: str | None = None
        width = height = 0
        image = record.image
        normalized = (
            normalize_page_image(
                image.content,
                image.mime_type,
                image.width,
                image.height,
                max_width=self.settings.max_display_width,
            )
            if image is not None
            else None
        )
        if normalized is not None:
            stored = self.store.put(address.page_image_key(record.page_number), normalized.data, PNG_MEDIA_TYPE)
            image_url, width, height = stored.url, normalized.width, normalized.height
        else:
            self.metrics.increment("page_images_missing_total", stage="pages")
        text_obj = self.store.put(
            address.page_text_key(record.page_number), text.encode("utf-8"), TEXT_CONTENT_TYPE
        )
        return PageArtifact(
            page=record.page_number,
            text=text,
            image_url=image_url,
            width=width,
            height=height,
            page_text_url=text_obj.url,
        )


__all__ = ["IngestionPipeline"]
