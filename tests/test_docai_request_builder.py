import pytest

from src.errors import ConfigurationError
from src.utils.docai_request_builder import build_docai_request, processor_path

VALID_PDF = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF"


def test_processor_path():
    assert processor_path("p", "us", "x") == "projects/p/locations/us/processors/x"


@pytest.mark.parametrize("parts", [("", "us", "x"), ("p", " ", "x"), ("p", "us", "")])
def test_processor_path_requires_all_parts(parts):
    with pytest.raises(ConfigurationError):
        processor_path(*parts)


def test_build_request_shape():
    request = build_docai_request(VALID_PDF, "application/pdf", name="projects/p/locations/us/processors/x")
    assert request["raw_document"] == {"content": VALID_PDF, "mime_type": "application/pdf"}
    assert request["skip_human_review"] is True
    assert "process_options" not in request


def test_image_quality_scores_option():
    request = build_docai_request(VALID_PDF, "application/pdf", name="n", enable_image_quality_scores=True)
    assert request["process_options"]["ocr_config"]["enable_image_quality_scores"] is True


def test_empty_bytes_rejected():
    with pytest.raises(ValueError):
        build_docai_request(b"", "application/pdf", name="n")


def test_unsupported_mime_rejected():
    with pytest.raises(ValueError):
        build_docai_request(VALID_PDF, "text/plain", name="n")
