from __future__ import annotations

import pytest

from src.config import AppConfig, PipelineSettings, get_config
from src.services.storage_service import InMemoryObjectStore
from tests.stubs.config_stub import make_config

CONFIG_ENV_KEYS = (
    "PROJECT_ID",
    "GCP_PROJECT_ID",
    "DOC_AI_LOCATION",
    "DOCAI_LOCATION",
    "REGION",
    "DOC_AI_PROCESSOR_ID",
    "DOCAI_PROCESSOR_ID",
    "SERVICE_ACCOUNT_JSON",
    "GCP_SA_KEY_JSON",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "STORAGE_BACKEND",
    "OUTPUT_GCS_BUCKET",
    "LOCAL_STORAGE_DIR",
    "OPENAI_API_KEY",
    "OCR_MAX_PAGES_PER_CALL",
    "TAG_BATCH_SIZE",
    "ENABLE_METRICS",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def app_config() -> AppConfig:
    return make_config()


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(max_pages_per_call=15, tag_batch_size=8, page_workers=4, external_max_attempts=2)


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()
