"""Chat session — one retrieval-augmented chat turn, end to end.

Turn states (strictly sequential):

  IDLE → THREAD_RESOLVED → QUERY_EMBEDDED → SOURCES_RANKED → CONTEXT_BUILT
       → ANSWERED → PERSISTED

Any failure moves the turn to FAILED. Nothing is written until both the title
(new threads) and the answer exist; the thread, the title, the user message and
the assistant message are then persisted in one transaction. A failed turn
therefore leaves neither an empty thread nor an orphaned user message.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal

from clipmind.config import ClipmindConfig
from clipmind.db.models import TRANSCRIPT, ChatMessage, ChatThread, Record, SourceRef
from clipmind.db.repository import Repository
from clipmind.errors import GenerationFailure, ThreadNotFound, ValidationFailure
from clipmind.rag.assembler import assemble, build_system_prompt
from clipmind.rag.cost import estimate_embedding, estimate_generation
from clipmind.rag.llm_client import Usage, count_tokens
from clipmind.rag.providers import (
    EmbeddingProvider,
    GenerationProvider,
    HistoryItem,
)
from clipmind.rag.ranker import BruteForceRanker, Candidate, RankedResult, SimilarityRanker

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "New chat"
_TITLE_PROMPT = "Shorten the following question into a 3-5 word title. Reply with the title only: {message}"
_TITLE_QUOTES = re.compile(r"[\"'「」“”‘’]")
_TITLE_FALLBACK_CHARS = 30


class TurnState(enum.Enum):
    IDLE = "idle"
    THREAD_RESOLVED = "thread_resolved"
    QUERY_EMBEDDED = "query_embedded"
    SOURCES_RANKED = "sources_ranked"
    CONTEXT_BUILT = "context_built"
    ANSWERED = "answered"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass
class ChatTurnResult:
    thread_id: int
    answer: str
    sources: list[SourceRef]
    usage: Usage
    cost: Decimal
    is_new_thread: bool = False
    states: list[TurnState] = field(default_factory=list)


class _ThreadLocks:
    """One lock per thread id so turns on the same thread never interleave.

    A lock lives only while some caller holds or waits on it, so the map stays
    bounded by the number of in-flight turns.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, tuple[threading.Lock, int]] = {}

    @contextlib.contextmanager
    def hold(self, thread_id: int) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(thread_id, (threading.Lock(), 0))
            self._locks[thread_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[thread_id]
                if users == 1:
                    del self._locks[thread_id]
                else:
                    self._locks[thread_id] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ChatSession:
    """Orchestrates chat turns over the stored knowledge base.

    Dependencies are injected so tests can pass an in-memory store and fake
    providers.

    Args:
        repo: Shared repository.
        embedder: Canonical embedding provider (independent of the answer provider).
        provider_factory: Maps a provider name ('openai' / 'gemini') to a
            GenerationProvider.
        config: Loaded configuration (top_k, history limit, display timezone).
        ranker: Similarity ranker; brute-force cosine by default.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingProvider,
        provider_factory: Callable[[str], GenerationProvider],
        config: ClipmindConfig,
        ranker: SimilarityRanker | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._provider_factory = provider_factory
        self._config = config
        self._ranker = ranker or BruteForceRanker()
        self._locks = _ThreadLocks()

    # ------------------------------------------------------------------
    # Chat turn
    # ------------------------------------------------------------------

    def send(
        self,
        message: str,
        thread_id: int | None = None,
        provider: str | None = None,
        tag_id: int | None = None,
    ) -> ChatTurnResult:
        """Run one chat turn and return the answer with its sources and cost.

        Raises:
            ValidationFailure: Blank message or unknown provider name.
            ThreadNotFound: *thread_id* does not exist.
            EmbeddingFailure / GenerationFailure: A provider call failed.
            PersistenceFailure: The turn could not be saved.
        """
        if not message or not message.strip():
            raise ValidationFailure("Message is required.")
        generator = self._provider_factory(provider or self._config.generation.default_provider)

        if thread_id is None:
            return self._run_turn(message, None, generator, tag_id)
        with self._locks.hold(thread_id):
            return self._run_turn(message, thread_id, generator, tag_id)

    def _run_turn(
        self,
        message: str,
        thread_id: int | None,
        generator: GenerationProvider,
        tag_id: int | None,
    ) -> ChatTurnResult:
        states = [TurnState.IDLE]

        def advance(state: TurnState) -> None:
            states.append(state)
            logger.debug("Chat turn (thread %s): %s", thread_id, state.value)

        try:
            # 1. Resolve thread
            is_new = thread_id is None
            if not is_new and self._repo.get_thread(thread_id) is None:  # type: ignore[arg-type]
                raise ThreadNotFound(thread_id)  # type: ignore[arg-type]
            advance(TurnState.THREAD_RESOLVED)

            # 2. History
            history = [] if is_new else self._history(thread_id)  # type: ignore[arg-type]

            # 3. Embed query
            query_vector = self._embedder.embed(message)
            advance(TurnState.QUERY_EMBEDDED)

            # 4. Rank
            ranked = self._rank(query_vector, tag_id)
            advance(TurnState.SOURCES_RANKED)

            # 5. Context
            context = assemble(ranked, self._config.chat.display_timezone)
            advance(TurnState.CONTEXT_BUILT)

            # 6. Title (new threads only)
            usage = Usage()
            cost = Decimal("0")
            title: str | None = None
            if is_new:
                try:
                    title_result = generator.generate(
                        [], _TITLE_PROMPT.format(message=message)
                    )
                except GenerationFailure as exc:
                    logger.warning("Title generation failed, using the message instead: %s", exc)
                    title = clean_title("", message)
                else:
                    title = clean_title(title_result.text, message)
                    usage = usage + title_result.usage
                    cost += estimate_generation(generator.model, title_result.usage)

            # 7. Answer
            answer = generator.generate(history, message, build_system_prompt(context))
            usage = usage + answer.usage
            advance(TurnState.ANSWERED)

            # 8. Cost
            cost += estimate_generation(generator.model, answer.usage)
            cost += estimate_embedding(
                self._embedder.model, count_tokens(self._embedder.model, message)
            )

            # 9. Persist
            sources = [self._source_ref(r.payload) for r in ranked]
            saved_thread_id = self._repo.record_turn(
                thread_id, title, message, answer.text, sources
            )
            advance(TurnState.PERSISTED)
        except Exception as exc:
            advance(TurnState.FAILED)
            logger.error("Chat turn failed (thread %s): %s", thread_id, exc)
            raise

        # 10. Result
        return ChatTurnResult(
            thread_id=saved_thread_id,
            answer=answer.text,
            sources=sources,
            usage=usage,
            cost=cost,
            is_new_thread=is_new,
            states=states,
        )

    def _history(self, thread_id: int) -> list[HistoryItem]:
        return [
            HistoryItem(role=m.role, content=m.content)
            for m in self._repo.recent_messages(thread_id, self._config.chat.history_limit)
        ]

    def _rank(self, query_vector: list[float], tag_id: int | None) -> list[RankedResult[Record]]:
        records = self._repo.list_indexed_records(tag_id)
        candidates = (
            Candidate(id=f"{r.kind}:{r.id}", vector=r.embedding, payload=r) for r in records
        )
        return self._ranker.rank(query_vector, candidates, self._config.retrieval.top_k)

    def _source_ref(self, record: Record) -> SourceRef:
        if record.kind == TRANSCRIPT:
            return SourceRef(
                id=record.id,  # type: ignore[arg-type]
                url=record.source_descriptor,
                name="Original video",
                type=record.kind,
            )
        # Documents are stored as text only; a link exists only when an
        # external host serves the uploaded files.
        base = self._config.chat.uploads_base_url.rstrip("/")
        return SourceRef(
            id=record.id,  # type: ignore[arg-type]
            url=f"{base}/{record.filename}" if base else "",  # type: ignore[attr-defined]
            name=record.source_descriptor,
            type=record.kind,
        )

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def list_threads(self) -> list[ChatThread]:
        """Return threads, most recently updated first."""
        return self._repo.list_threads()

    def get_messages(self, thread_id: int) -> list[ChatMessage]:
        """Return a thread's messages in chronological order (empty if unknown)."""
        return self._repo.list_messages(thread_id)

    def delete_thread(self, thread_id: int) -> bool:
        """Delete a thread and its messages. Returns False if none matched."""
        with self._locks.hold(thread_id):
            deleted = self._repo.delete_thread(thread_id)
        if deleted:
            logger.info("Deleted chat thread %s and its messages.", thread_id)
        else:
            logger.warning("No chat thread found with id %s.", thread_id)
        return deleted


def clean_title(raw: str, message: str) -> str:
    """Strip quote characters from a generated title; fall back to the message."""
    title = _TITLE_QUOTES.sub("", raw).strip()
    if not title:
        title = message.strip()[:_TITLE_FALLBACK_CHARS] or PLACEHOLDER_TITLE
    return title
