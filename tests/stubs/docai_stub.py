"""Local Document AI stubs for offline tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Callable, Sequence


def build_stub_page(
    segments: Sequence[tuple[int, int]],
    *,
    image: bytes | None = None,
    mime_type: str = "image/png",
    width: int = 0,
    height: int = 0,
) -> SimpleNamespace:
    text_segments = [SimpleNamespace(start_index=start, end_index=end) for start, end in segments]
    layout = SimpleNamespace(text_anchor=SimpleNamespace(text_segments=text_segments))
    page_image = (
        SimpleNamespace(content=image, mime_type=mime_type, width=width, height=height)
        if image is not None
        else None
    )
    return SimpleNamespace(layout=layout, image=page_image, paragraphs=[])


def build_stub_document(page_texts: Sequence[str], *, image: bytes | None = None) -> SimpleNamespace:
    """Return a minimal object matching the Document AI shape the code expects."""
    text = ""
    pages = []
    for page_text in page_texts:
        start = len(text)
        text += page_text + "\n"
        pages.append(build_stub_page([(start, start + len(page_text))], image=image))
    return SimpleNamespace(text=text, pages=pages)


class StubDocumentProcessorServiceClient:
    """Sync stub with the ``process_document`` surface used by ``DocumentAIOcrClient``."""

    def __init__(
        self,
        responder: Callable[[dict[str, Any]], Any] | None = None,
        *,
        failures: Sequence[BaseException] = (),
    ) -> None:
        self.requests: list[dict[str, Any]] = []
        self.timeouts: list[float | None] = []
        self._responder = responder or (lambda _request: build_stub_document(["Stub Document AI text"]))
        self._failures = list(failures)
        self.transport = SimpleNamespace(closed=False, close=self._close)

    def _close(self) -> None:
        self.transport.closed = True

    def process_document(self, request: dict[str, Any], timeout: float | None = None) -> SimpleNamespace:
        self.requests.append(request)
        self.timeouts.append(timeout)
        if self._failures:
            raise self._failures.pop(0)
        return SimpleNamespace(document=self._responder(request))
