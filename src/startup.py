"""Wire configured collaborators into an ``IngestionPipeline``.

Shared by the FastAPI app and the CLI. Configuration is validated before any
client is constructed so a bad deployment fails before touching the network.
"""

from __future__ import annotations

import logging
from typing import Any

from src.config import AppConfig
from src.services.docai_client import DocumentAIOcrClient
from src.services.ingestion_pipeline import IngestionPipeline
from src.services.interfaces import MetricsClient, ObjectStore, OcrClient, TextGenerator
from src.services.openai_backend import OpenAITextGenerator
from src.services.source_fetcher import SourceFetcher
from src.services.storage_service import GcsObjectStore, build_object_store
from src.utils.credentials import build_google_credentials
from src.utils.logging_utils import structured_log

_LOG = logging.getLogger(__name__)
_UNSET: Any = object()


def build_pipeline(
    cfg: AppConfig,
    *,
    metrics: MetricsClient | None = None,
    ocr_client: OcrClient | None = None,
    store: ObjectStore | None = None,
    generator: TextGenerator | None = _UNSET,
    fetcher: SourceFetcher | None = None,
    allow_local: bool = False,
) -> IngestionPipeline:
    """Build the production pipeline; any collaborator may be overridden.

    ``allow_local`` lets the default fetcher read local paths and ``file://``
    URLs. Only the CLI enables it; the HTTP service fetches remote sources only.
    """
    cfg.validate_required()
    settings = cfg.pipeline_settings()
    credentials = build_google_credentials(cfg.service_account())

    if ocr_client is None:
        ocr_client = DocumentAIOcrClient(
            project_id=cfg.project_id,
            location=cfg.doc_ai_location,
            processor_id=cfg.doc_ai_processor_id,
            credentials=credentials,
            max_attempts=settings.external_max_attempts,
            timeout=cfg.doc_ai_timeout_seconds,
        )
    if store is None:
        store = build_object_store(cfg, credentials=credentials)
    if generator is _UNSET:
        generator = (
            OpenAITextGenerator(
                api_key=cfg.openai_api_key or "",
                model=cfg.openai_model,
                timeout=cfg.openai_timeout_seconds,
                max_attempts=settings.external_max_attempts,
            )
            if cfg.tagging_enabled
            else None
        )
    if fetcher is None:
        fetcher = SourceFetcher(
            max_bytes=settings.max_source_bytes,
            timeout=cfg.source_fetch_timeout_seconds,
            gcs_download=store.download if isinstance(store, GcsObjectStore) else None,
            allow_local=allow_local,
        )

    structured_log(
        _LOG,
        logging.INFO,
        "pipeline_configured",
        project_id=cfg.project_id,
        tagging=generator is not None,
    )
    return IngestionPipeline(
        fetcher=fetcher,
        ocr_client=ocr_client,
        store=store,
        settings=settings,
        generator=generator,
        metrics=metrics,
        root_prefix=cfg.storage_root_prefix,
        default_project_id=cfg.default_project_id,
        tagging_model=cfg.openai_model,
    )


__all__ = ["build_pipeline"]
