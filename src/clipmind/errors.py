"""Exception taxonomy shared by the library, chat, API and CLI layers.

  ClipmindError
  ├── ValidationFailure      missing/invalid input (4xx)
  │   ├── ThreadNotFound
  │   ├── RecordNotFound
  │   └── DuplicateTag
  ├── ProviderFailure        embedding/generation/transcription call failed (5xx)
  │   ├── EmbeddingFailure
  │   ├── GenerationFailure
  │   └── TranscriptionFailure
  ├── IndexingFailure        background embedding failed — logged, never surfaced
  └── PersistenceFailure     store write failed (5xx)
"""

from __future__ import annotations


class ClipmindError(Exception):
    """Base class for every error raised by clipmind."""


class ValidationFailure(ClipmindError):
    """Required input is missing or invalid."""


class ThreadNotFound(ValidationFailure):
    def __init__(self, thread_id: int) -> None:
        super().__init__(f"Chat thread {thread_id} not found.")
        self.thread_id = thread_id


class RecordNotFound(ValidationFailure):
    def __init__(self, kind: str, record_id: int) -> None:
        super().__init__(f"{kind.capitalize()} {record_id} not found.")
        self.kind = kind
        self.record_id = record_id


class DuplicateTag(ValidationFailure):
    def __init__(self, name: str) -> None:
        super().__init__(f"Tag '{name}' already exists.")
        self.name = name


class ProviderFailure(ClipmindError):
    """An external model provider call failed or timed out.

    Attributes:
        provider: LiteLLM model string (or tool name) that failed.
    """

    def __init__(self, message: str, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class EmbeddingFailure(ProviderFailure):
    pass


class GenerationFailure(ProviderFailure):
    pass


class TranscriptionFailure(ProviderFailure):
    pass


class IndexingFailure(ClipmindError):
    """Background indexing could not attach an embedding to a record."""


class PersistenceFailure(ClipmindError):
    """A store write failed."""
