"""Background indexing — attach embeddings to saved records off the request path.

Saving a record never waits for the embedding round-trip. The caller submits
an ``IndexJob`` and returns; worker threads drain a bounded queue, embed the
job text and write the vector back. A failure leaves the record saved but
unsearchable and is logged, never raised to the original caller.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field

from clipmind.db.models import DOCUMENT, TRANSCRIPT, Document, Record, Transcript
from clipmind.db.repository import Repository
from clipmind.errors import ClipmindError, IndexingFailure, ProviderFailure
from clipmind.rag.providers import EmbeddingProvider

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class IndexJob:
    kind: str
    record_id: int
    text: str


@dataclass
class IndexingStats:
    submitted: int = 0
    indexed: int = 0
    failed: int = 0
    skipped: int = 0
    failures: dict[tuple[str, int], str] = field(default_factory=dict)


def embedding_text(
    record: Record, snippet_chars: int = 5_000, document_chars: int = 2_000
) -> str:
    """Return the bounded text embedded for *record*.

    Transcripts embed their summary plus a transcript prefix; documents embed
    a prefix of their content.
    """
    if isinstance(record, Transcript):
        return (
            f"Summary: {record.summary}\n\n"
            f"Transcript Snippet: {record.transcript[:snippet_chars]}"
        )
    if isinstance(record, Document):
        return record.text[:document_chars]
    raise IndexingFailure(f"Cannot index record of kind '{record.kind}'.")


class IndexingQueue:
    """Bounded worker queue that computes and stores record embeddings.

    Args:
        repo: Shared repository.
        embedder: Canonical embedding provider.
        workers: Number of worker threads.
        maxsize: Queue capacity; ``submit`` blocks up to *submit_timeout*
            seconds when full, then raises IndexingFailure.
        max_retries: Extra attempts on ProviderFailure, with exponential backoff.
        retry_backoff: Base backoff delay in seconds.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingProvider,
        workers: int = 2,
        maxsize: int = 100,
        submit_timeout: float = 5.0,
        max_retries: int = 0,
        retry_backoff: float = 1.0,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._submit_timeout = submit_timeout
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._stats = IndexingStats()
        self._stats_lock = threading.Lock()
        self._threads = [
            threading.Thread(
                target=self._worker, name=f"clipmind-indexer-{i}", daemon=True
            )
            for i in range(workers)
        ]
        self._started = False
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> IndexingQueue:
        if not self._started:
            for t in self._threads:
                t.start()
            self._started = True
        return self

    def join(self) -> None:
        """Block until every submitted job has been processed."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the workers after the queued jobs are processed."""
        if not self._started or self._stopped:
            return
        self._stopped = True
        for _ in self._threads:
            self._queue.put(_STOP)
        if wait:
            for t in self._threads:
                t.join()

    def __enter__(self) -> IndexingQueue:
        return self.start()

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def submit(self, job: IndexJob) -> None:
        """Queue *job* without waiting for it to run.

        Raises:
            IndexingFailure: If the queue is stopped or stays full for
                ``submit_timeout`` seconds (the record stays saved, unindexed).
        """
        if self._stopped:
            raise IndexingFailure("Indexing queue is shut down.")
        try:
            self._queue.put(job, timeout=self._submit_timeout)
        except queue.Full:
            logger.warning(
                "Indexing queue full; %s %s left unindexed.", job.kind, job.record_id
            )
            raise IndexingFailure(
                f"Indexing queue is full; {job.kind} {job.record_id} was not queued."
            ) from None
        with self._stats_lock:
            self._stats.submitted += 1

    def stats(self) -> IndexingStats:
        with self._stats_lock:
            return IndexingStats(
                submitted=self._stats.submitted,
                indexed=self._stats.indexed,
                failed=self._stats.failed,
                skipped=self._stats.skipped,
                failures=dict(self._stats.failures),
            )

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self.process(job)
            finally:
                self._queue.task_done()

    def process(self, job: IndexJob) -> bool:
        """Embed one job and store the vector. Returns True when indexed.

        Never raises: failures are logged and counted.
        """
        logger.info("Background indexing for %s %s...", job.kind, job.record_id)
        try:
            vector = self._embed_with_retry(job)
            stored = self._repo.set_embedding(job.kind, job.record_id, vector)
        except ClipmindError as exc:
            logger.error(
                "Background indexing failed for %s %s: %s", job.kind, job.record_id, exc
            )
            with self._stats_lock:
                self._stats.failed += 1
                self._stats.failures[(job.kind, job.record_id)] = str(exc)
            return False

        with self._stats_lock:
            if stored:
                self._stats.indexed += 1
            else:
                self._stats.skipped += 1
        if stored:
            logger.info("Indexed %s %s.", job.kind, job.record_id)
        else:
            logger.info("%s %s was deleted before indexing finished.", job.kind, job.record_id)
        return stored

    def _embed_with_retry(self, job: IndexJob) -> list[float]:
        attempt = 0
        while True:
            try:
                return self._embedder.embed(job.text)
            except ProviderFailure:
                if attempt >= self._max_retries:
                    raise
                delay = self._retry_backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    "Embedding %s %s failed; retry %d/%d in %.1fs.",
                    job.kind,
                    job.record_id,
                    attempt,
                    self._max_retries,
                    delay,
                )
                time.sleep(delay)


def job_for(record: Record, snippet_chars: int = 5_000, document_chars: int = 2_000) -> IndexJob:
    if record.id is None or record.kind not in (TRANSCRIPT, DOCUMENT):
        raise IndexingFailure("Only stored transcripts and documents can be indexed.")
    return IndexJob(
        kind=record.kind,
        record_id=record.id,
        text=embedding_text(record, snippet_chars, document_chars),
    )
