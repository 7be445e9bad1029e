import pytest

from src.errors import ExternalServiceError, MalformedSourceError
from src.models.ingestion import ChunkPageRecord, OcrChunkResult, SourceDocument
from src.services.metrics import RecordingMetrics
from src.services.ocr_orchestrator import OcrOrchestrator
from tests.stubs.pipeline_fakes import FakeOcrClient, make_source


def test_forty_pages_are_sent_as_three_ordered_chunks():
    ocr = FakeOcrClient(image_size=None)
    metrics = RecordingMetrics()
    document = OcrOrchestrator(ocr, max_pages_per_call=15, metrics=metrics).run(make_source(40))

    assert ocr.calls == [15, 15, 10]
    assert [page.page_number for page in document.pages] == list(range(1, 41))
    assert [chunk.index for chunk in document.chunks] == [0, 1, 2]
    assert metrics.counters[("ocr", "ocr_chunks_total")] == 3


def test_page_text_uses_the_chunk_local_offsets():
    document = OcrOrchestrator(FakeOcrClient(image_size=None), max_pages_per_call=15).run(make_source(40))
    assert [document.page_text(page) for page in document.pages] == [f"Page {n} body" for n in range(1, 41)]
    sixteenth = document.pages[15]
    assert sixteenth.chunk_index == 1
    assert sixteenth.text_segments[0][0] == 0


def test_full_text_joins_chunk_texts():
    document = OcrOrchestrator(FakeOcrClient(image_size=None), max_pages_per_call=2).run(make_source(3))
    assert document.full_text == "Page 1 body\nPage 2 body\n\n\nPage 3 body\n"


def test_zero_page_document_makes_no_calls():
    ocr = FakeOcrClient()
    document = OcrOrchestrator(ocr, max_pages_per_call=15).run(make_source(0))
    assert ocr.calls == []
    assert document.pages == []
    assert document.full_text == ""


@pytest.mark.parametrize("max_pages", [1, 3, 7, 15, 50])
def test_every_page_appears_exactly_once(max_pages):
    document = OcrOrchestrator(FakeOcrClient(image_size=None), max_pages_per_call=max_pages).run(make_source(17))
    assert [page.page_number for page in document.pages] == list(range(1, 18))


def test_chunk_failure_stops_further_chunks():
    ocr = FakeOcrClient(image_size=None, fail_on_call=2)
    with pytest.raises(ExternalServiceError):
        OcrOrchestrator(ocr, max_pages_per_call=15).run(make_source(40))
    assert ocr.calls == [15, 15]


def test_short_chunk_response_is_rejected():
    ocr = FakeOcrClient(image_size=None, short_by=1)
    with pytest.raises(ExternalServiceError):
        OcrOrchestrator(ocr, max_pages_per_call=15).run(make_source(5))


def test_duplicate_local_indices_are_rejected():
    class _Duplicating:
        def process(self, document, mime_type):
            return OcrChunkResult(text="", pages=[ChunkPageRecord(local_index=0), ChunkPageRecord(local_index=0)])

    with pytest.raises(ExternalServiceError):
        OcrOrchestrator(_Duplicating(), max_pages_per_call=15).run(make_source(2))


def test_malformed_source_fails_before_ocr():
    ocr = FakeOcrClient()
    with pytest.raises(MalformedSourceError):
        OcrOrchestrator(ocr, max_pages_per_call=15).run(SourceDocument(data=b"not a pdf"))
    assert ocr.calls == []
