"""Fetch source documents from http(s), ``gs://`` or the local filesystem."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import unquote, urlparse

import httpx

from src.errors import MalformedSourceError, SourceFetchError
from src.models.ingestion import PDF_MEDIA_TYPE, SourceDocument
from src.utils.logging_utils import stage_marker

_LOG = logging.getLogger("source_fetcher")

PDF_MAGIC = b"%PDF-"


def detect_media_type(data: bytes, declared: Optional[str]) -> str:
    """Trust the bytes over the declared header; only PDFs are accepted."""
    if data.lstrip()[:5] == PDF_MAGIC:
        return PDF_MEDIA_TYPE
    declared_type = (declared or "").split(";")[0].strip().lower()
    raise MalformedSourceError(
        f"Source is not a PDF document (declared {declared_type or 'unknown'} media type)"
    )


class SourceFetcher:
    def __init__(
        self,
        *,
        max_bytes: int,
        timeout: float = 60.0,
        http_client: Optional[httpx.Client] = None,
        gcs_download: Optional[Callable[[str], bytes]] = None,
        allow_local: bool = False,
    ) -> None:
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._http_client = http_client
        self._gcs_download = gcs_download
        self.allow_local = allow_local

    def fetch(self, location: str) -> SourceDocument:
        if not location or not location.strip():
            raise SourceFetchError("Source location is empty")
        location = location.strip()
        try:
            scheme = urlparse(location).scheme.lower()
        except ValueError as exc:
            raise SourceFetchError(f"Source location is not a valid URL: {exc}") from exc
        with stage_marker(_LOG, stage="fetch") as marker:
            if scheme in {"http", "https"}:
                data, declared = self._fetch_http(location)
            elif scheme == "gs":
                data, declared = self._fetch_gcs(location), None
            elif scheme in {"", "file"}:
                if not self.allow_local:
                    raise SourceFetchError("Local source paths are not accepted; use an http(s) or gs:// location")
                data, declared = self._fetch_local(location), None
            else:
                raise SourceFetchError(f"Unsupported source location scheme: {scheme}")
            marker.add_completion_fields(bytes=len(data))
        media_type = detect_media_type(data, declared)
        return SourceDocument(data=data, media_type=media_type, location=location)

    def _check_size(self, size: int) -> None:
        if size > self.max_bytes:
            raise SourceFetchError(f"Source exceeds the {self.max_bytes}-byte limit")

    def _client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._http_client

    def _fetch_http(self, url: str) -> tuple[bytes, Optional[str]]:
        try:
            with self._client().stream("GET", url) as response:
                if response.status_code // 100 != 2:
                    raise SourceFetchError(f"Source fetch returned HTTP {response.status_code}")
                length = response.headers.get("content-length")
                if length and length.isdigit():
                    self._check_size(int(length))
                buffer = bytearray()
                for block in response.iter_bytes():
                    buffer.extend(block)
                    self._check_size(len(buffer))
                return bytes(buffer), response.headers.get("content-type")
        except httpx.InvalidURL as exc:
            raise SourceFetchError(f"Source location is not a valid URL: {exc}") from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"Source fetch failed: {exc}") from exc

    def _fetch_gcs(self, uri: str) -> bytes:
        download = self._gcs_download or _default_gcs_download
        try:
            data = download(uri)
        except ValueError as exc:
            raise SourceFetchError(str(exc)) from exc
        except Exception as exc:
            raise SourceFetchError(f"GCS download failed for {uri}: {exc}") from exc
        self._check_size(len(data))
        return data

    def _fetch_local(self, location: str) -> bytes:
        parsed = urlparse(location)
        path = Path(unquote(parsed.path) if parsed.scheme == "file" else location).expanduser()
        if not path.is_file():
            raise SourceFetchError(f"Source file not found: {path}")
        self._check_size(path.stat().st_size)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise SourceFetchError(f"Source file unreadable: {exc}") from exc

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()


def _default_gcs_download(uri: str, client: Any = None) -> bytes:
    from google.cloud import storage

    from src.services.storage_service import parse_gcs_uri

    bucket_name, object_name = parse_gcs_uri(uri)
    client = client or storage.Client()
    return client.bucket(bucket_name).blob(object_name).download_as_bytes()


__all__ = ["SourceFetcher", "detect_media_type", "PDF_MAGIC"]
