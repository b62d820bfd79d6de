"""Library — saved transcripts, uploaded documents and tags.

Saves return as soon as the row is written; indexing is handed to the
IndexingQueue. An indexing hand-off failure is logged and leaves the record
listed but unsearchable.
"""

from __future__ import annotations

import logging

from clipmind.db.models import DOCUMENT, TRANSCRIPT, Document, Record, Tag, Transcript
from clipmind.db.repository import Repository
from clipmind.errors import IndexingFailure, RecordNotFound, ValidationFailure
from clipmind.ingest.indexer import IndexingQueue, job_for

logger = logging.getLogger(__name__)


def _require(**fields: object) -> None:
    missing = [k for k, v in fields.items() if v is None or (isinstance(v, str) and not v.strip())]
    if missing:
        raise ValidationFailure(f"Missing required data: {', '.join(missing)}.")


class Library:
    """Record and tag management on top of the repository.

    Args:
        repo: Shared repository.
        indexer: Queue that embeds saved records in the background.
        snippet_chars: Transcript prefix embedded next to the summary.
        document_chars: Document prefix embedded for documents.
    """

    def __init__(
        self,
        repo: Repository,
        indexer: IndexingQueue,
        snippet_chars: int = 5_000,
        document_chars: int = 2_000,
    ) -> None:
        self._repo = repo
        self._indexer = indexer
        self._snippet_chars = snippet_chars
        self._document_chars = document_chars

    # ------------------------------------------------------------------
    # Transcripts
    # ------------------------------------------------------------------

    def save_transcript(
        self,
        url: str,
        transcript: str,
        summary: str,
        tag_id: int | None = None,
        cost: str | None = None,
    ) -> Transcript:
        """Store a transcript immediately (``embedding`` is None) and queue indexing."""
        _require(url=url, transcript=transcript, summary=summary)
        record = self._repo.add_transcript(
            Transcript(url=url, transcript=transcript, summary=summary, tag_id=tag_id, cost=cost)
        )
        self._queue_indexing(record)
        return record

    def history(self) -> list[Transcript]:
        return self._repo.list_transcripts()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(
        self,
        name: str,
        content: str,
        filename: str | None = None,
        mime_type: str = "text/plain",
        tag_id: int | None = None,
    ) -> Document:
        """Store already-extracted document text and queue indexing."""
        _require(name=name)
        if not content or not content.strip():
            raise ValidationFailure("The document contains no extractable text.")
        record = self._repo.add_document(
            Document(
                name=name,
                filename=filename or name,
                mime_type=mime_type,
                text=content,
                tag_id=tag_id,
            )
        )
        self._queue_indexing(record)
        return record

    def documents(self) -> list[Document]:
        return self._repo.list_documents()

    # ------------------------------------------------------------------
    # Shared record operations
    # ------------------------------------------------------------------

    def get(self, kind: str, record_id: int) -> Record:
        record = self._repo.get_record(kind, record_id)
        if record is None:
            raise RecordNotFound(_kind_name(kind), record_id)
        return record

    def delete(self, kind: str, record_id: int) -> None:
        if not self._repo.delete_record(kind, record_id):
            raise RecordNotFound(_kind_name(kind), record_id)
        logger.info("Deleted %s %s.", _kind_name(kind), record_id)

    def set_tag(self, kind: str, record_id: int, tag_id: int | None) -> None:
        if not self._repo.set_tag(kind, record_id, tag_id):
            raise RecordNotFound(_kind_name(kind), record_id)

    def reindex(self, kind: str, record_id: int) -> None:
        """Queue a record for (re-)indexing, e.g. after a failed attempt."""
        self._queue_indexing(self.get(kind, record_id))

    def _queue_indexing(self, record: Record) -> None:
        try:
            self._indexer.submit(
                job_for(record, self._snippet_chars, self._document_chars)
            )
        except IndexingFailure as exc:
            logger.error(
                "Could not queue %s %s for indexing: %s", record.kind, record.id, exc
            )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def create_tag(self, name: str) -> Tag:
        _require(name=name)
        return self._repo.add_tag(name.strip())

    def tags(self) -> list[Tag]:
        return self._repo.list_tags()

    def delete_tag(self, tag_id: int) -> None:
        """Delete a tag; tagged records survive with their tag cleared."""
        if not self._repo.delete_tag(tag_id):
            raise RecordNotFound("tag", tag_id)


def _kind_name(kind: str) -> str:
    return {TRANSCRIPT: "transcript", DOCUMENT: "document"}.get(kind, kind)
