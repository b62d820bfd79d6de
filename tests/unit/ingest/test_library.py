"""Tests for the Library service: saving, tagging and deleting records."""

from __future__ import annotations

import pytest

from clipmind.db.models import DOCUMENT, TRANSCRIPT
from clipmind.errors import DuplicateTag, RecordNotFound, ValidationFailure
from clipmind.ingest.indexer import IndexingQueue
from clipmind.ingest.library import Library


@pytest.fixture
def indexer(repo, fake_embedder):
    queue = IndexingQueue(repo, fake_embedder(default=[0.6, 0.8])).start()
    yield queue
    queue.shutdown()


@pytest.fixture
def library(repo, indexer):
    return Library(repo, indexer)


def test_save_transcript_returns_unindexed_record(library, indexer, repo):
    record = library.save_transcript("https://example.com/reel/1", "words", "summary")
    assert record.id is not None
    assert record.embedding is None

    indexer.join()
    assert repo.get_transcript(record.id).embedding_vector == [0.6, 0.8]


@pytest.mark.parametrize(
    "url,transcript,summary",
    [("", "words", "summary"), ("https://x", "", "summary"), ("https://x", "words", "")],
)
def test_save_transcript_requires_fields(library, url, transcript, summary):
    with pytest.raises(ValidationFailure, match="Missing required data"):
        library.save_transcript(url, transcript, summary)


def test_add_document_defaults_filename(library):
    doc = library.add_document("notes.md", "some text")
    assert doc.filename == "notes.md"
    assert doc.mime_type == "text/plain"


def test_add_document_rejects_blank_content(library):
    with pytest.raises(ValidationFailure, match="no extractable text"):
        library.add_document("empty.pdf", "   ")


def test_delete_missing_record_raises(library):
    with pytest.raises(RecordNotFound):
        library.delete(TRANSCRIPT, 404)


def test_delete_removes_record(library):
    doc = library.add_document("notes.md", "text")
    library.delete(DOCUMENT, doc.id)
    assert library.documents() == []


def test_set_tag_on_missing_record_raises(library):
    tag = library.create_tag("cooking")
    with pytest.raises(RecordNotFound):
        library.set_tag(DOCUMENT, 9, tag.id)


def test_tag_lifecycle(library):
    tag = library.create_tag("  cooking ")
    assert tag.name == "cooking"
    with pytest.raises(DuplicateTag):
        library.create_tag("cooking")

    record = library.save_transcript("https://example.com/reel/1", "w", "s", tag_id=tag.id)
    library.delete_tag(tag.id)
    assert library.get(TRANSCRIPT, record.id).tag_id is None
    with pytest.raises(RecordNotFound):
        library.delete_tag(tag.id)


def test_save_survives_stopped_indexer(repo, fake_embedder, caplog):
    stopped = IndexingQueue(repo, fake_embedder()).start()
    stopped.shutdown()
    library = Library(repo, stopped)

    with caplog.at_level("ERROR", logger="clipmind.ingest.library"):
        record = library.save_transcript("https://example.com/reel/1", "w", "s")

    assert repo.get_transcript(record.id) is not None
    assert "Could not queue" in caplog.text


def test_reindex_queues_again(library, indexer, repo):
    doc = library.add_document("notes.md", "text")
    indexer.join()
    repo.set_embedding(DOCUMENT, doc.id, [0.0, 1.0])
    library.reindex(DOCUMENT, doc.id)
    indexer.join()
    assert repo.get_document(doc.id).embedding_vector == [0.6, 0.8]
