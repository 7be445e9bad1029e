import json

import pytest

from src.errors import ValidationError
from src.models.ingestion import IngestionAddress, PageArtifact, TagRecord
from src.services.manifest_builder import ManifestBuilder
from src.services.storage_service import InMemoryObjectStore

ADDRESS = IngestionAddress(ingestion_id="ingest-abc", prefix="corpus/p/ingest-abc", project_id="p")


def _artifact(page, image=True):
    return PageArtifact(
        page=page,
        text=f"page {page}",
        image_url=f"memory://corpus/img-{page}.png" if image else None,
        width=1200 if image else 0,
        height=800 if image else 0,
        page_text_url=f"memory://corpus/page-{page}.txt",
    )


def test_publish_writes_manifest_last_with_exact_shape():
    store = InMemoryObjectStore()
    artifacts = [_artifact(1), _artifact(2, image=False), _artifact(3)]
    tags = [TagRecord.placeholder(page, "skipped") for page in (1, 2, 3)]

    published = ManifestBuilder(store).publish(
        ADDRESS, "https://example.test/a.pdf", "full text", artifacts, tags, created_at="2026-01-01T00:00:00.000Z"
    )

    assert store.writes == [ADDRESS.full_text_key, ADDRESS.tags_key, ADDRESS.manifest_key]
    assert published.url == f"memory://corpus/{ADDRESS.manifest_key}"
    manifest = json.loads(store.get(ADDRESS.manifest_key))
    assert list(manifest) == [
        "ingestionId",
        "createdAt",
        "sourceUrl",
        "pageCount",
        "fullTextUrl",
        "tagsUrl",
        "pageImagesCount",
        "imagesMissingCount",
        "pages",
    ]
    assert manifest["pageCount"] == 3
    assert manifest["pageImagesCount"] == 2
    assert manifest["imagesMissingCount"] == 1
    assert manifest["pages"][1] == {
        "page": 2,
        "imageUrl": None,
        "width": 0,
        "height": 0,
        "pageTextUrl": "memory://corpus/page-2.txt",
    }
    assert manifest["fullTextUrl"].endswith("fullText.txt")
    assert store.get(ADDRESS.full_text_key) == b"full text"
    assert store.content_type(ADDRESS.manifest_key).startswith("application/json")


def test_tags_document_lists_every_page():
    store = InMemoryObjectStore()
    tags = [TagRecord(page=1, tags=["a"], confidence=0.5)]
    ManifestBuilder(store, tagging_model="gpt-test").publish(ADDRESS, "src", "", [_artifact(1)], tags)
    document = json.loads(store.get(ADDRESS.tags_key))
    assert document["ingestionId"] == "ingest-abc"
    assert document["model"] == "gpt-test"
    assert document["pages"][0]["tags"] == ["a"]
    assert "note" not in document["pages"][0]


def test_empty_document_manifest():
    store = InMemoryObjectStore()
    published = ManifestBuilder(store).publish(ADDRESS, "src", "", [], [])
    manifest = json.loads(store.get(ADDRESS.manifest_key))
    assert manifest["pageCount"] == 0
    assert manifest["pages"] == []
    assert published.manifest.images_missing_count == 0


@pytest.mark.parametrize(
    "pages,tag_pages",
    [([1, 3], [1, 3]), ([2, 1], [2, 1]), ([1, 1], [1, 1]), ([1, 2], [1]), ([1, 2], [2, 1])],
)
def test_inconsistent_pages_are_rejected_before_any_write(pages, tag_pages):
    store = InMemoryObjectStore()
    with pytest.raises(ValidationError):
        ManifestBuilder(store).publish(
            ADDRESS,
            "src",
            "",
            [_artifact(page) for page in pages],
            [TagRecord.placeholder(page, "n") for page in tag_pages],
        )
    assert store.writes == []
