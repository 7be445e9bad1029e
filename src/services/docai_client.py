"""Document AI implementation of the ``OcrClient`` capability.

Wraps ``DocumentProcessorServiceClient.process_document``: builds the raw
document request, retries transient Google API failures with backoff, and
reduces the returned ``Document`` to chunk-local text plus per-page offset
segments and raster images. Anything else in the response is ignored.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from google.api_core import exceptions as gexc
from google.api_core.client_options import ClientOptions
from google.cloud import documentai_v1 as documentai

from src.errors import ExternalServiceError
from src.models.ingestion import ChunkPageRecord, OcrChunkResult, OcrImage, segments_from_mapping
from src.utils.docai_request_builder import build_docai_request, processor_path
from src.utils.retry import call_with_retry

_LOG = logging.getLogger("docai_client")

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.TooManyRequests,
    gexc.InternalServerError,
    gexc.Aborted,
)


def _is_page_limit_error(exc: BaseException) -> bool:
    message = str(getattr(exc, "message", None) or exc)
    return "PAGE_LIMIT_EXCEEDED" in message or "page limit" in message.lower()


def is_transient_docai_error(exc: BaseException) -> bool:
    if _is_page_limit_error(exc):
        return False
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    return isinstance(exc, gexc.ResourceExhausted)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _page_image(page: Any) -> OcrImage | None:
    image = _field(page, "image")
    content = _field(image, "content")
    if not content:
        return None
    if isinstance(content, str):
        content = base64.b64decode(content)
    return OcrImage(
        content=bytes(content),
        mime_type=_field(image, "mime_type") or "image/png",
        width=int(_field(image, "width") or 0),
        height=int(_field(image, "height") or 0),
    )


def _page_segments(page: Any) -> tuple[tuple[int, int], ...]:
    anchor = _field(_field(page, "layout"), "text_anchor")
    return segments_from_mapping(_field(anchor, "text_segments") or [])


def document_to_chunk_result(document: Any) -> OcrChunkResult:
    """Reduce a Document AI ``Document`` (proto, dict or test double) to an ``OcrChunkResult``."""
    if document is None:
        raise ExternalServiceError("Document AI returned no document")
    pages = [
        ChunkPageRecord(
            local_index=index,
            text_segments=_page_segments(page),
            image=_page_image(page),
        )
        for index, page in enumerate(_field(document, "pages") or [])
    ]
    return OcrChunkResult(text=_field(document, "text") or "", pages=pages)


def _default_client(endpoint: str, credentials: Any, timeout: float) -> Any:
    return documentai.DocumentProcessorServiceClient(
        client_options=ClientOptions(api_endpoint=endpoint),
        credentials=credentials,
    )


@dataclass
class DocumentAIOcrClient:
    """``OcrClient`` backed by a Document AI OCR processor.

    Parameters:
        project_id / location / processor_id: identify the processor.
        credentials: google-auth credentials, ``None`` for application default.
        client_factory: callable returning a DocumentProcessorServiceClient (DI / tests).
        max_attempts: attempts per chunk for transient failures.
        timeout: per-attempt timeout in seconds passed to the SDK.
    """

    project_id: str
    location: str
    processor_id: str
    credentials: Any = None
    client_factory: Optional[Callable[[str, Any, float], Any]] = None
    max_attempts: int = 3
    timeout: float = 120.0
    retry_multiplier: float = 0.5
    _client: Any = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.name = processor_path(self.project_id, self.location, self.processor_id)
        self.endpoint = f"{self.location}-documentai.googleapis.com"
        factory = self.client_factory or _default_client
        self._client = factory(self.endpoint, self.credentials, self.timeout)

    def process(self, document: bytes, mime_type: str) -> OcrChunkResult:
        request = build_docai_request(document, mime_type, name=self.name)
        started = time.perf_counter()
        try:
            result = call_with_retry(
                lambda: self._client.process_document(request=request, timeout=self.timeout),
                service="documentai",
                is_transient=is_transient_docai_error,
                max_attempts=self.max_attempts,
                multiplier=self.retry_multiplier,
            )
        except gexc.GoogleAPICallError as exc:
            if _is_page_limit_error(exc):
                raise ExternalServiceError(f"Document AI rejected chunk page count: {exc}") from exc
            raise ExternalServiceError(f"Document AI processing failed: {exc}") from exc
        except Exception as exc:
            raise ExternalServiceError(f"Unexpected Document AI error: {exc}") from exc
        finally:
            _LOG.debug(
                "docai_process_attempted",
                extra={"elapsed_ms": round((time.perf_counter() - started) * 1000, 2)},
            )
        return document_to_chunk_result(_field(result, "document"))

    def close(self) -> None:
        transport = getattr(self._client, "transport", None)
        close = getattr(transport, "close", None)
        if callable(close):
            close()


__all__ = ["DocumentAIOcrClient", "document_to_chunk_result", "is_transient_docai_error"]
