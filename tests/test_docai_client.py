import base64
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as gexc

from src.errors import ConfigurationError, ExternalServiceError
from src.services.docai_client import (
    DocumentAIOcrClient,
    document_to_chunk_result,
    is_transient_docai_error,
)
from tests.stubs.docai_stub import StubDocumentProcessorServiceClient, build_stub_document, build_stub_page
from tests.stubs.pipeline_fakes import make_pdf, make_png


def _client(stub, **kwargs):
    return DocumentAIOcrClient(
        project_id="proj",
        location="eu",
        processor_id="proc",
        client_factory=lambda endpoint, credentials, timeout: stub,
        retry_multiplier=0,
        **kwargs,
    )


def test_process_sends_raw_document_and_parses_pages():
    png = make_png(30, 20)
    stub = StubDocumentProcessorServiceClient(lambda _req: build_stub_document(["one", "two"], image=png))
    client = _client(stub, timeout=42.0)

    result = client.process(make_pdf(2), "application/pdf")

    request = stub.requests[0]
    assert request["name"] == "projects/proj/locations/eu/processors/proc"
    assert request["raw_document"]["mime_type"] == "application/pdf"
    assert request["raw_document"]["content"].startswith(b"%PDF-")
    assert stub.timeouts == [42.0]
    assert client.endpoint == "eu-documentai.googleapis.com"
    assert result.text == "one\ntwo\n"
    assert [page.local_index for page in result.pages] == [0, 1]
    assert result.pages[1].text_segments == ((4, 7),)
    assert result.pages[0].image.content == png


def test_transient_errors_are_retried():
    stub = StubDocumentProcessorServiceClient(failures=[gexc.ServiceUnavailable("busy")])
    result = _client(stub, max_attempts=3).process(make_pdf(1), "application/pdf")
    assert len(stub.requests) == 2
    assert len(result.pages) == 1


def test_exhausted_retries_raise_external_service_error():
    stub = StubDocumentProcessorServiceClient(
        failures=[gexc.DeadlineExceeded("slow"), gexc.DeadlineExceeded("slow")]
    )
    with pytest.raises(ExternalServiceError):
        _client(stub, max_attempts=2).process(make_pdf(1), "application/pdf")
    assert len(stub.requests) == 2


def test_permanent_errors_are_not_retried():
    stub = StubDocumentProcessorServiceClient(failures=[gexc.InvalidArgument("PAGE_LIMIT_EXCEEDED")])
    with pytest.raises(ExternalServiceError):
        _client(stub, max_attempts=3).process(make_pdf(1), "application/pdf")
    assert len(stub.requests) == 1


def test_missing_processor_is_configuration_error():
    with pytest.raises(ConfigurationError):
        DocumentAIOcrClient(project_id="p", location="us", processor_id="", client_factory=lambda *a: None)


def test_close_closes_transport():
    stub = StubDocumentProcessorServiceClient()
    _client(stub).close()
    assert stub.transport.closed is True


def test_document_conversion_handles_dict_payloads():
    document = {
        "text": "hello world",
        "pages": [
            {
                "layout": {"text_anchor": {"text_segments": [{"endIndex": "5"}, {"startIndex": "6", "endIndex": "11"}]}},
                "image": {"content": base64.b64encode(b"\x89PNG").decode(), "mime_type": "image/png", "width": 3},
            },
            {"layout": {}},
        ],
    }
    result = document_to_chunk_result(document)
    assert result.pages[0].text_segments == ((0, 5), (6, 11))
    assert result.pages[0].image.content == b"\x89PNG"
    assert result.pages[0].image.width == 3
    assert result.pages[1].text_segments == ()
    assert result.pages[1].image is None


def test_document_conversion_without_image():
    page = build_stub_page([(0, 2)])
    result = document_to_chunk_result(SimpleNamespace(text="hi", pages=[page]))
    assert result.pages[0].image is None


def test_transient_classification():
    assert is_transient_docai_error(gexc.TooManyRequests("slow down"))
    assert is_transient_docai_error(gexc.ResourceExhausted("quota"))
    assert not is_transient_docai_error(gexc.ResourceExhausted("PAGE_LIMIT_EXCEEDED"))
    assert not is_transient_docai_error(gexc.PermissionDenied("nope"))
