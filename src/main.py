"""FastAPI application entrypoint for the corpus ingestion service."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

from fastapi import FastAPI

from src.api import build_api_router
from src.config import AppConfig, get_config
from src.logging_setup import configure_logging
from src.services.ingestion_pipeline import IngestionPipeline
from src.services.metrics import NullMetrics, PrometheusMetrics
from src.startup import build_pipeline
from src.utils.logging_utils import structured_log

_API_LOG = logging.getLogger("api")


def _debug_enabled() -> bool:
    return any(arg == "--debug" for arg in sys.argv) or os.getenv(
        "DEBUG", "false"
    ).strip().lower() in {"1", "true", "yes", "on"}


def create_app(
    cfg: AppConfig | None = None,
    *,
    pipeline: IngestionPipeline | None = None,
    **overrides: Any,
) -> FastAPI:
    """Build the app. ``pipeline`` or collaborator ``overrides`` replace the production wiring."""
    configure_logging(level=logging.DEBUG if _debug_enabled() else logging.INFO)
    if cfg is None:
        get_config.cache_clear()
        cfg = get_config()

    app = FastAPI(title="PDF Corpus Ingestion API", version="1.0.0")
    app.state.config = cfg
    if cfg.enable_metrics:
        app.state.metrics = PrometheusMetrics.instrument_app(app)
    else:
        app.state.metrics = NullMetrics()

    if pipeline is None:
        pipeline = build_pipeline(cfg, metrics=app.state.metrics, allow_local=False, **overrides)
    app.state.pipeline = pipeline

    app.include_router(build_api_router())
    structured_log(
        _API_LOG,
        logging.INFO,
        "service_bootstrap",
        project_id=cfg.project_id,
        tagging=pipeline.tagger.enabled,
    )
    return app


__all__ = ["create_app"]
