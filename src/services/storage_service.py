"""Object storage backends for ingestion artifacts.

All backends overwrite in place: keys are deterministic per ingestion, so a
re-ingestion replaces the previous objects wholesale (last write wins).
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Optional, Tuple
from urllib.parse import quote

from google.api_core import exceptions as gexc

from src.errors import ConfigurationError, ExternalServiceError
from src.services.interfaces import ObjectStore, StoredObject
from src.utils.retry import call_with_retry

_LOG = logging.getLogger("storage")

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.TooManyRequests,
    gexc.InternalServerError,
    gexc.BadGateway,
    ConnectionError,
)


def parse_gcs_uri(gcs_uri: str) -> Tuple[str, str]:
    if not gcs_uri.startswith("gs://"):
        raise ValueError("GCS URI must start with gs://")
    bucket, _, blob_name = gcs_uri[5:].partition("/")
    if not bucket or not blob_name:
        raise ValueError("Invalid GCS URI; expected gs://bucket/object")
    return bucket, blob_name


def _validate_key(key: str) -> str:
    if not key or key.startswith("/") or any(part in {"", ".", ".."} for part in key.split("/")):
        raise ValueError(f"Invalid object key: {key!r}")
    return key


def is_transient_storage_error(exc: BaseException) -> bool:
    return isinstance(exc, _TRANSIENT_ERRORS)


class GcsObjectStore:
    """Publicly readable GCS bucket; URLs are ``{public_base_url}/{bucket}/{key}``."""

    def __init__(
        self,
        bucket: str,
        *,
        client: Any = None,
        credentials: Any = None,
        project: Optional[str] = None,
        public_base_url: str = "https://storage.googleapis.com",
        max_attempts: int = 3,
        retry_multiplier: float = 0.5,
    ) -> None:
        if not bucket:
            raise ConfigurationError("OUTPUT_GCS_BUCKET is required for the gcs storage backend")
        if client is None:
            from google.cloud import storage

            client = storage.Client(project=project, credentials=credentials)
        self.client = client
        self.bucket_name = bucket
        self._bucket = client.bucket(bucket)
        self.public_base_url = public_base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.retry_multiplier = retry_multiplier

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{self.bucket_name}/{quote(key)}"

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        blob = self._bucket.blob(_validate_key(key))
        try:
            call_with_retry(
                lambda: blob.upload_from_string(data, content_type=content_type),
                service="gcs",
                is_transient=is_transient_storage_error,
                max_attempts=self.max_attempts,
                multiplier=self.retry_multiplier,
            )
        except Exception as exc:
            raise ExternalServiceError(
                f"GCS upload failed for gs://{self.bucket_name}/{key}: {exc}"
            ) from exc
        _LOG.debug("object_stored", extra={"bytes": len(data), "stage": "storage"})
        return StoredObject(key=key, url=self.url_for(key))

    def download(self, gcs_uri: str) -> bytes:
        bucket_name, object_name = parse_gcs_uri(gcs_uri)
        return self.client.bucket(bucket_name).blob(object_name).download_as_bytes()


class LocalObjectStore:
    """Directory-backed store for the CLI; URLs are ``file://`` URIs."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        target = self.root / _validate_key(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(target)
        except OSError as exc:
            raise ExternalServiceError(f"Local write failed for {target}: {exc}") from exc
        return StoredObject(key=key, url=target.as_uri())


class InMemoryObjectStore:
    """Thread-safe dict-backed store used by tests and dry runs."""

    def __init__(self, base_url: str = "memory://corpus") -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.writes: list[str] = []
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        _validate_key(key)
        with self._lock:
            self.objects[key] = (bytes(data), content_type)
            self.writes.append(key)
        return StoredObject(key=key, url=f"{self.base_url}/{key}")

    def get(self, key: str) -> bytes:
        return self.objects[key][0]

    def content_type(self, key: str) -> str:
        return self.objects[key][1]


def build_object_store(cfg: Any, *, credentials: Any = None, client: Any = None) -> ObjectStore:
    """Pick the backend named by ``STORAGE_BACKEND``."""
    backend = (cfg.storage_backend or "").strip().lower()
    if backend == "gcs":
        return GcsObjectStore(
            cfg.output_gcs_bucket,
            client=client,
            credentials=credentials,
            project=cfg.project_id or None,
            public_base_url=cfg.storage_public_base_url,
            max_attempts=cfg.external_max_attempts,
        )
    if backend == "local":
        return LocalObjectStore(cfg.local_storage_dir)
    if backend == "memory":
        return InMemoryObjectStore()
    raise ConfigurationError(f"Unknown STORAGE_BACKEND: {cfg.storage_backend!r}")


__all__ = [
    "GcsObjectStore",
    "LocalObjectStore",
    "InMemoryObjectStore",
    "build_object_store",
    "parse_gcs_uri",
    "is_transient_storage_error",
]
