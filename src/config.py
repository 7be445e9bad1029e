"""Configuration for the corpus ingestion service.

Environment variables (aliases in parentheses):
 - PROJECT_ID, DOC_AI_LOCATION (REGION), DOC_AI_PROCESSOR_ID (DOCAI_PROCESSOR_ID)
 - SERVICE_ACCOUNT_JSON (GCP_SA_KEY_JSON) or GOOGLE_APPLICATION_CREDENTIALS
 - STORAGE_BACKEND (gcs | local | memory), OUTPUT_GCS_BUCKET, STORAGE_PUBLIC_BASE_URL,
   LOCAL_STORAGE_DIR, STORAGE_ROOT_PREFIX
 - OPENAI_API_KEY, OPENAI_MODEL (tagging is skipped without a key)
 - OCR_MAX_PAGES_PER_CALL, TAG_BATCH_SIZE, TAG_EXCERPT_CHARS, MAX_DISPLAY_WIDTH,
   PAGE_WORKERS, EXTERNAL_MAX_ATTEMPTS

Values of the form ``sm://...`` are resolved through Secret Manager.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.errors import ConfigurationError
from src.utils.credentials import ServiceAccountInfo, load_service_account
from src.utils.secrets import resolve_secret

STORAGE_BACKENDS = ("gcs", "local", "memory")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Tuning knobs injected into the pipeline as one unit."""

    max_pages_per_call: int = 15
    tag_batch_size: int = 8
    tag_excerpt_chars: int = 1200
    max_display_width: int = 1200
    page_workers: int = 4
    external_max_attempts: int = 3
    max_source_bytes: int = 200 * 1024 * 1024

    def __post_init__(self) -> None:
        for name in (
            "max_pages_per_call",
            "tag_batch_size",
            "tag_excerpt_chars",
            "max_display_width",
            "page_workers",
            "external_max_attempts",
            "max_source_bytes",
        ):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"{name} must be >= 1")


class AppConfig(BaseSettings):
    project_id: str = Field('', validation_alias=AliasChoices('PROJECT_ID', 'GCP_PROJECT_ID'))
    doc_ai_location: str = Field(
        'us', validation_alias=AliasChoices('DOC_AI_LOCATION', 'DOCAI_LOCATION', 'REGION')
    )
    doc_ai_processor_id: str = Field(
        '', validation_alias=AliasChoices('DOC_AI_PROCESSOR_ID', 'DOCAI_PROCESSOR_ID')
    )
    doc_ai_timeout_seconds: float = Field(120.0, validation_alias='DOC_AI_TIMEOUT_SECONDS')
    service_account_json: str | None = Field(
        None, validation_alias=AliasChoices('SERVICE_ACCOUNT_JSON', 'GCP_SA_KEY_JSON')
    )
    google_application_credentials: str | None = Field(
        None, validation_alias='GOOGLE_APPLICATION_CREDENTIALS'
    )

    storage_backend: str = Field('gcs', validation_alias='STORAGE_BACKEND')
    output_gcs_bucket: str = Field('', validation_alias='OUTPUT_GCS_BUCKET')
    storage_public_base_url: str = Field(
        'https://storage.googleapis.com', validation_alias='STORAGE_PUBLIC_BASE_URL'
    )
    local_storage_dir: str = Field('./corpus-output', validation_alias='LOCAL_STORAGE_DIR')
    storage_root_prefix: str = Field('corpus', validation_alias='STORAGE_ROOT_PREFIX')
    default_project_id: str = Field('default', validation_alias='DEFAULT_PROJECT_ID')

    openai_api_key: str | None = Field(None, validation_alias='OPENAI_API_KEY')
    openai_model: str = Field('gpt-4o-mini', validation_alias='OPENAI_MODEL')
    openai_timeout_seconds: float = Field(60.0, validation_alias='OPENAI_TIMEOUT_SECONDS')

    ocr_max_pages_per_call: int = Field(15, validation_alias='OCR_MAX_PAGES_PER_CALL')
    tag_batch_size: int = Field(8, validation_alias='TAG_BATCH_SIZE')
    tag_excerpt_chars: int = Field(1200, validation_alias='TAG_EXCERPT_CHARS')
    max_display_width: int = Field(1200, validation_alias='MAX_DISPLAY_WIDTH')
    page_workers: int = Field(4, validation_alias='PAGE_WORKERS')
    external_max_attempts: int = Field(3, validation_alias='EXTERNAL_MAX_ATTEMPTS')
    max_source_bytes: int = Field(200 * 1024 * 1024, validation_alias='MAX_SOURCE_BYTES')
    source_fetch_timeout_seconds: float = Field(60.0, validation_alias='SOURCE_FETCH_TIMEOUT_SECONDS')

    enable_metrics_raw: str | bool | None = Field(True, validation_alias='ENABLE_METRICS')

    model_config = SettingsConfigDict(
        env_file='.env', extra='ignore', case_sensitive=False, populate_by_name=True
    )

    def model_post_init(self, __context: Any) -> None:  # pylint: disable=W0221
        project_hint = self.project_id or None
        for field_name in ("openai_api_key", "service_account_json", "doc_ai_processor_id"):
            resolved = resolve_secret(getattr(self, field_name), project_id=project_hint)
            if resolved is not None:
                setattr(self, field_name, resolved)

    @property
    def enable_metrics(self) -> bool:
        return parse_bool(self.enable_metrics_raw)

    @property
    def tagging_enabled(self) -> bool:
        return bool((self.openai_api_key or "").strip())

    def pipeline_settings(self) -> PipelineSettings:
        return PipelineSettings(
            max_pages_per_call=self.ocr_max_pages_per_call,
            tag_batch_size=self.tag_batch_size,
            tag_excerpt_chars=self.tag_excerpt_chars,
            max_display_width=self.max_display_width,
            page_workers=self.page_workers,
            external_max_attempts=self.external_max_attempts,
            max_source_bytes=self.max_source_bytes,
        )

    def service_account(self) -> ServiceAccountInfo | None:
        return load_service_account(self.service_account_json, self.google_application_credentials)

    def validate_required(self) -> None:
        """Fail fast on anything that would otherwise surface mid-ingestion."""
        missing = [
            env
            for env, value in (
                ("PROJECT_ID", self.project_id),
                ("DOC_AI_LOCATION", self.doc_ai_location),
                ("DOC_AI_PROCESSOR_ID", self.doc_ai_processor_id),
            )
            if not (value or "").strip()
        ]
        backend = self.storage_backend.strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)} (got {self.storage_backend!r})"
            )
        if backend == "gcs" and not self.output_gcs_bucket.strip():
            missing.append("OUTPUT_GCS_BUCKET")
        if missing:
            raise ConfigurationError("Missing required configuration values: " + ", ".join(missing))
        self.service_account()
        self.pipeline_settings()


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()  # type: ignore[call-arg]


__all__ = ["AppConfig", "PipelineSettings", "get_config", "parse_bool", "STORAGE_BACKENDS"]
