"""Command-line entrypoint: run one ingestion and print the outcome JSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Iterable, Optional

from src.config import STORAGE_BACKENDS, AppConfig, get_config
from src.errors import IngestionError
from src.logging_setup import configure_logging
from src.models.ingestion import IngestionFailure
from src.services.metrics import NullMetrics
from src.startup import build_pipeline

_LOG = logging.getLogger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="corpus-ingest",
        description="Ingest a PDF into the page corpus (OCR, page images, tags, manifest).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Ingest one PDF from a URL, gs:// URI or local path.")
    ingest.add_argument("location", help="http(s) URL, gs://bucket/object, file:// URL or local path.")
    ingest.add_argument("--project", dest="project_id", help="Project id used in the storage prefix.")
    ingest.add_argument("--ingestion-id", dest="ingestion_key", help="Explicit ingestion key.")
    ingest.add_argument(
        "--storage",
        choices=STORAGE_BACKENDS,
        help="Override STORAGE_BACKEND for this run.",
    )
    ingest.add_argument("--output-dir", help="Directory for --storage local (LOCAL_STORAGE_DIR).")
    ingest.add_argument("--no-tags", action="store_true", help="Skip tagging even if OPENAI_API_KEY is set.")
    return parser


def _apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    update: dict[str, Any] = {}
    if args.storage:
        update["storage_backend"] = args.storage
    if args.output_dir:
        update["local_storage_dir"] = args.output_dir
    return cfg.model_copy(update=update) if update else cfg


def run_cli(argv: Optional[Iterable[str]] = None, *, cfg: AppConfig | None = None, **overrides: Any) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)

    cfg = _apply_overrides(cfg or get_config(), args)
    if args.no_tags:
        overrides["generator"] = None
    try:
        pipeline = build_pipeline(cfg, metrics=NullMetrics(), allow_local=True, **overrides)
    except IngestionError as exc:
        outcome: Any = IngestionFailure(kind=exc.kind, message=exc.message)
    else:
        outcome = pipeline.ingest(args.location, project_id=args.project_id, ingestion_key=args.ingestion_key)

    print(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
    if isinstance(outcome, IngestionFailure):
        _LOG.warning("cli_ingest_failed", extra={"error_kind": outcome.kind})
        return 1
    return 0


def main() -> None:
    sys.exit(run_cli())


__all__ = ["run_cli", "build_parser", "main"]


if __name__ == "__main__":  # pragma: no cover
    main()
