"""Repository pattern for all clipmind database operations.

Single interface for: tags, transcripts, documents, embeddings, chat threads
and chat messages. The connection is injected by the caller; every method is
one statement or one short transaction and never spans a provider call.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from clipmind.db.models import (
    DOCUMENT,
    TRANSCRIPT,
    ChatMessage,
    ChatThread,
    Document,
    Record,
    SourceRef,
    Tag,
    Transcript,
)
from clipmind.errors import DuplicateTag, PersistenceFailure, ValidationFailure

_TABLES: dict[str, str] = {TRANSCRIPT: "transcripts", DOCUMENT: "documents"}

_TRANSCRIPT_COLS = "id, url, transcript, summary, embedding, tag_id, cost, created_at"
_DOCUMENT_COLS = "id, name, filename, mime_type, content, embedding, tag_id, created_at"


def _table(kind: str) -> str:
    try:
        return _TABLES[kind]
    except KeyError:
        raise ValidationFailure(f"Unknown record kind '{kind}'.") from None


class Repository:
    """Data access layer for all clipmind database entities.

    Wraps an open sqlite3.Connection. Access is serialized with a re-entrant
    lock so one connection can be shared by request handlers and indexing
    workers. The connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see clipmind.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run a write in one transaction; roll back on any error, wrap sqlite errors."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceFailure(f"Database write failed: {exc}") from exc
            except BaseException:
                self._conn.rollback()
                raise

    def _read(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def add_tag(self, name: str) -> Tag:
        """Insert a tag. Raises DuplicateTag if *name* is taken."""
        try:
            with self._write() as conn:
                cur = conn.execute("INSERT INTO tags (name) VALUES (?)", (name,))
        except sqlite3.IntegrityError:
            raise DuplicateTag(name) from None
        return self.get_tag(cur.lastrowid)  # type: ignore[return-value]

    def get_tag(self, tag_id: int) -> Tag | None:
        rows = self._read("SELECT id, name, created_at FROM tags WHERE id = ?", (tag_id,))
        return _row_to_tag(rows[0]) if rows else None

    def list_tags(self) -> list[Tag]:
        """Return all tags ordered by name."""
        return [
            _row_to_tag(r)
            for r in self._read("SELECT id, name, created_at FROM tags ORDER BY name ASC")
        ]

    def delete_tag(self, tag_id: int) -> bool:
        """Delete a tag. Records keep existing with ``tag_id`` set to NULL."""
        with self._write() as conn:
            cur = conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Records (transcripts + documents)
    # ------------------------------------------------------------------

    def add_transcript(self, transcript: Transcript) -> Transcript:
        """Insert a transcript with no embedding. Returns the stored record."""
        rowid = self._insert_record(
            """
            INSERT INTO transcripts (url, transcript, summary, embedding, tag_id, cost)
            VALUES (?, ?, ?, NULL, ?, ?)
            """,
            (
                transcript.url,
                transcript.transcript,
                transcript.summary,
                transcript.tag_id,
                transcript.cost,
            ),
            transcript.tag_id,
        )
        return self.get_transcript(rowid)  # type: ignore[return-value]

    def add_document(self, document: Document) -> Document:
        """Insert a document with no embedding. Returns the stored record."""
        rowid = self._insert_record(
            """
            INSERT INTO documents (name, filename, mime_type, content, embedding, tag_id)
            VALUES (?, ?, ?, ?, NULL, ?)
            """,
            (
                document.name,
                document.filename,
                document.mime_type,
                document.text,
                document.tag_id,
            ),
            document.tag_id,
        )
        return self.get_document(rowid)  # type: ignore[return-value]

    def _insert_record(self, sql: str, params: tuple, tag_id: int | None) -> int:
        try:
            with self._write() as conn:
                cur = conn.execute(sql, params)
        except sqlite3.IntegrityError:
            raise ValidationFailure(f"Tag {tag_id} does not exist.") from None
        return cur.lastrowid  # type: ignore[return-value]

    def get_transcript(self, record_id: int) -> Transcript | None:
        rows = self._read(
            f"SELECT {_TRANSCRIPT_COLS} FROM transcripts WHERE id = ?", (record_id,)
        )
        return _row_to_transcript(rows[0]) if rows else None

    def get_document(self, record_id: int) -> Document | None:
        rows = self._read(
            f"SELECT {_DOCUMENT_COLS} FROM documents WHERE id = ?", (record_id,)
        )
        return _row_to_document(rows[0]) if rows else None

    def get_record(self, kind: str, record_id: int) -> Record | None:
        """Return a transcript or document by kind and id."""
        _table(kind)
        if kind == TRANSCRIPT:
            return self.get_transcript(record_id)
        return self.get_document(record_id)

    def list_transcripts(self) -> list[Transcript]:
        """Return all transcripts, newest first (indexed or not)."""
        rows = self._read(
            f"SELECT {_TRANSCRIPT_COLS} FROM transcripts ORDER BY created_at DESC, id DESC"
        )
        return [_row_to_transcript(r) for r in rows]

    def list_documents(self) -> list[Document]:
        """Return all documents, newest first (indexed or not)."""
        rows = self._read(
            f"SELECT {_DOCUMENT_COLS} FROM documents ORDER BY created_at DESC, id DESC"
        )
        return [_row_to_document(r) for r in rows]

    def list_indexed_records(self, tag_id: int | None = None) -> list[Record]:
        """Return every record with a non-null embedding: transcripts, then documents.

        Args:
            tag_id: Restrict to records carrying this tag.
        """
        where = "WHERE embedding IS NOT NULL"
        params: tuple = ()
        if tag_id is not None:
            where += " AND tag_id = ?"
            params = (tag_id,)
        transcripts = self._read(
            f"SELECT {_TRANSCRIPT_COLS} FROM transcripts {where} ORDER BY id", params
        )
        documents = self._read(
            f"SELECT {_DOCUMENT_COLS} FROM documents {where} ORDER BY id", params
        )
        return [_row_to_transcript(r) for r in transcripts] + [
            _row_to_document(r) for r in documents
        ]

    def set_embedding(self, kind: str, record_id: int, embedding: list[float]) -> bool:
        """Attach an embedding. Returns False if the record no longer exists."""
        table = _table(kind)
        with self._write() as conn:
            cur = conn.execute(
                f"UPDATE {table} SET embedding = ? WHERE id = ?",
                (json.dumps(embedding), record_id),
            )
        return cur.rowcount > 0

    def set_tag(self, kind: str, record_id: int, tag_id: int | None) -> bool:
        """Set or clear the tag of a record. Returns False if no record matched."""
        table = _table(kind)
        try:
            with self._write() as conn:
                cur = conn.execute(
                    f"UPDATE {table} SET tag_id = ? WHERE id = ?", (tag_id, record_id)
                )
        except sqlite3.IntegrityError:
            raise ValidationFailure(f"Tag {tag_id} does not exist.") from None
        return cur.rowcount > 0

    def delete_record(self, kind: str, record_id: int) -> bool:
        """Delete a transcript or document. Returns False if no record matched."""
        table = _table(kind)
        with self._write() as conn:
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Chat threads + messages
    # ------------------------------------------------------------------

    def get_thread(self, thread_id: int) -> ChatThread | None:
        rows = self._read(
            "SELECT id, title, created_at, updated_at FROM chat_threads WHERE id = ?",
            (thread_id,),
        )
        return _row_to_thread(rows[0]) if rows else None

    def list_threads(self) -> list[ChatThread]:
        """Return all threads, most recently updated first."""
        rows = self._read(
            "SELECT id, title, created_at, updated_at FROM chat_threads "
            "ORDER BY updated_at DESC, id DESC"
        )
        return [_row_to_thread(r) for r in rows]

    def delete_thread(self, thread_id: int) -> bool:
        """Delete a thread; its messages cascade. Returns False if none matched."""
        with self._write() as conn:
            cur = conn.execute("DELETE FROM chat_threads WHERE id = ?", (thread_id,))
        return cur.rowcount > 0

    def recent_messages(self, thread_id: int, limit: int) -> list[ChatMessage]:
        """Return the last *limit* messages of a thread, oldest first."""
        if limit <= 0:
            return []
        rows = self._read(
            """
            SELECT * FROM (
                SELECT id, thread_id, role, content, sources, created_at
                FROM chat_messages WHERE thread_id = ?
                ORDER BY id DESC LIMIT ?
            ) ORDER BY id ASC
            """,
            (thread_id, limit),
        )
        return [_row_to_message(r) for r in rows]

    def list_messages(self, thread_id: int) -> list[ChatMessage]:
        """Return every message of a thread in chronological order."""
        rows = self._read(
            "SELECT id, thread_id, role, content, sources, created_at "
            "FROM chat_messages WHERE thread_id = ? ORDER BY created_at ASC, id ASC",
            (thread_id,),
        )
        return [_row_to_message(r) for r in rows]

    def record_turn(
        self,
        thread_id: int | None,
        title: str | None,
        user_content: str,
        assistant_content: str,
        sources: list[SourceRef],
    ) -> int:
        """Persist a whole chat turn in one transaction. Returns the thread id.

        Creates the thread when *thread_id* is None. Sets the title when
        *title* is given, bumps ``updated_at``, then inserts the user message and
        the assistant message with its source snapshot.

        Raises:
            PersistenceFailure: If any statement fails (e.g. the thread was
                deleted mid-turn); nothing of the turn is written.
        """
        try:
            return self._record_turn(
                thread_id, title, user_content, assistant_content, sources
            )
        except sqlite3.IntegrityError as exc:
            raise PersistenceFailure(f"Could not save chat turn: {exc}") from exc

    def _record_turn(
        self,
        thread_id: int | None,
        title: str | None,
        user_content: str,
        assistant_content: str,
        sources: list[SourceRef],
    ) -> int:
        with self._write() as conn:
            if thread_id is None:
                cur = conn.execute(
                    "INSERT INTO chat_threads (title) VALUES (?)", (title or "",)
                )
                thread_id = cur.lastrowid
            elif title is not None:
                conn.execute(
                    "UPDATE chat_threads SET title = ?, updated_at = datetime('now') "
                    "WHERE id = ?",
                    (title, thread_id),
                )
            else:
                conn.execute(
                    "UPDATE chat_threads SET updated_at = datetime('now') WHERE id = ?",
                    (thread_id,),
                )
            user = ChatMessage(thread_id=thread_id, role="user", content=user_content)
            assistant = ChatMessage(
                thread_id=thread_id,
                role="assistant",
                content=assistant_content,
                sources=sources,
            )
            for message in (user, assistant):
                conn.execute(
                    "INSERT INTO chat_messages (thread_id, role, content, sources) "
                    "VALUES (?, ?, ?, ?)",
                    (message.thread_id, message.role, message.content, message.sources_json),
                )
        return thread_id  # type: ignore[return-value]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(id=row["id"], name=row["name"], created_at=row["created_at"])


def _row_to_transcript(row: sqlite3.Row) -> Transcript:
    return Transcript(
        id=row["id"],
        url=row["url"],
        transcript=row["transcript"],
        summary=row["summary"],
        embedding=row["embedding"],
        tag_id=row["tag_id"],
        cost=row["cost"],
        created_at=row["created_at"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        name=row["name"],
        filename=row["filename"],
        mime_type=row["mime_type"],
        text=row["content"],
        embedding=row["embedding"],
        tag_id=row["tag_id"],
        created_at=row["created_at"],
    )


def _row_to_thread(row: sqlite3.Row) -> ChatThread:
    return ChatThread(
        id=row["id"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    sources = None
    if row["sources"]:
        sources = [SourceRef(**s) for s in json.loads(row["sources"])]
    return ChatMessage(
        id=row["id"],
        thread_id=row["thread_id"],
        role=row["role"],
        content=row["content"],
        sources=sources,
        created_at=row["created_at"],
    )
