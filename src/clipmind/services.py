"""Service wiring — one explicitly constructed object graph per process.

The store connection, providers and indexing queue are built here and passed
into the components that need them; nothing is a module-level singleton.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from clipmind.chat.session import ChatSession
from clipmind.config import ClipmindConfig
from clipmind.db.connection import Database
from clipmind.db.repository import Repository
from clipmind.db.schema import initialize
from clipmind.ingest.indexer import IndexingQueue
from clipmind.ingest.library import Library
from clipmind.ingest.summarizer import TranscriptSummarizer
from clipmind.ingest.transcriber import Transcriber
from clipmind.rag.providers import (
    EmbeddingProvider,
    GenerationProvider,
    get_embedding_provider,
    get_generation_provider,
)


@dataclass
class Services:
    config: ClipmindConfig
    conn: sqlite3.Connection
    repo: Repository
    embedder: EmbeddingProvider
    provider_factory: Callable[[str], GenerationProvider]
    indexer: IndexingQueue
    library: Library
    chat: ChatSession
    transcriber: Transcriber

    def summarizer(self, provider: str | None = None) -> TranscriptSummarizer:
        return TranscriptSummarizer(
            self.provider_factory(provider or self.config.generation.default_provider)
        )

    def close(self) -> None:
        """Drain the indexing queue, stop its workers and close the store."""
        self.indexer.shutdown()
        self.conn.close()


def open_db(db_path: Path | str) -> sqlite3.Connection:
    """Open (or create) the knowledge base and run migrations."""
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def build_services(
    config: ClipmindConfig,
    db_path: Path | str | None = None,
    embedder: EmbeddingProvider | None = None,
    provider_factory: Callable[[str], GenerationProvider] | None = None,
    start_indexer: bool = True,
) -> Services:
    """Build every service from *config*.

    Args:
        config: Loaded configuration.
        db_path: Override ``config.database.path`` (``":memory:"`` for tests).
        embedder: Override the canonical embedding provider.
        provider_factory: Override the name → GenerationProvider mapping.
        start_indexer: Start the indexing worker threads immediately.
    """
    conn = open_db(db_path if db_path is not None else config.database.path)
    repo = Repository(conn)
    embedder = embedder or get_embedding_provider(config)
    factory = provider_factory or (lambda name: get_generation_provider(name, config))

    indexer = IndexingQueue(
        repo,
        embedder,
        workers=config.indexing.workers,
        maxsize=config.indexing.queue_size,
        submit_timeout=config.indexing.submit_timeout,
        max_retries=config.indexing.max_retries,
        retry_backoff=config.indexing.retry_backoff,
    )
    if start_indexer:
        indexer.start()

    library = Library(
        repo,
        indexer,
        snippet_chars=config.embedding.transcript_snippet_chars,
        document_chars=config.embedding.document_chars,
    )
    chat = ChatSession(repo, embedder, factory, config)
    return Services(
        config=config,
        conn=conn,
        repo=repo,
        embedder=embedder,
        provider_factory=factory,
        indexer=indexer,
        library=library,
        chat=chat,
        transcriber=Transcriber(config),
    )
