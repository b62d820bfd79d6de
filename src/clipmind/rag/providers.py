"""Embedding and answer-generation providers.

One canonical EmbeddingProvider serves every record and every chat query.
Generation is polymorphic over two variants sharing one ``generate`` signature:

  OpenAIProvider  turn-structured — history is sent as role-tagged messages.
  GeminiProvider  single-context — history is flattened to ``role: content``
                  lines and the system instruction travels as a leading text
                  part. Callers never see the difference.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from clipmind.errors import EmbeddingFailure, GenerationFailure, ValidationFailure
from clipmind.rag.llm_client import Completion, Usage, complete, embed

if TYPE_CHECKING:
    from clipmind.config import ClipmindConfig


@dataclass(frozen=True)
class HistoryItem:
    role: str
    content: str


# ------------------------------------------------------------------
# Embedding
# ------------------------------------------------------------------


class EmbeddingProvider:
    """Convert text into a fixed-length vector with one embedding model.

    Never truncates: callers cap the input length.

    Args:
        model: LiteLLM embedding model string.
        timeout: Request timeout in seconds.
        num_retries: Retries on transient errors.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        timeout: float | None = 30.0,
        num_retries: int = 0,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.num_retries = num_retries

    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            EmbeddingFailure: On any provider error or timeout.
        """
        try:
            return embed(
                self.model, text, num_retries=self.num_retries, timeout=self.timeout
            )
        except Exception as exc:
            raise EmbeddingFailure(
                f"Embedding with '{self.model}' failed: {exc}", provider=self.model
            ) from exc


# ------------------------------------------------------------------
# Generation
# ------------------------------------------------------------------


class GenerationProvider(ABC):
    """Produce text plus usage from history, a user message and an optional
    system instruction."""

    name: str = ""

    def __init__(
        self,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        timeout: float | None = 120.0,
        num_retries: int = 0,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.num_retries = num_retries

    def generate(
        self,
        history: list[HistoryItem],
        user_message: str,
        system_instruction: str | None = None,
    ) -> Completion:
        """Generate a reply.

        Raises:
            GenerationFailure: On any provider error or timeout.
        """
        messages = self.build_messages(history, user_message, system_instruction)
        try:
            result = complete(
                self.model,
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                num_retries=self.num_retries,
                timeout=self.timeout,
            )
        except Exception as exc:
            raise GenerationFailure(
                f"Generation with '{self.model}' failed: {exc}", provider=self.model
            ) from exc
        return Completion(text=result.text.strip(), usage=result.usage or Usage())

    @abstractmethod
    def build_messages(
        self,
        history: list[HistoryItem],
        user_message: str,
        system_instruction: str | None,
    ) -> list[dict]:
        """Translate the provider-neutral request into the wire message list."""


class OpenAIProvider(GenerationProvider):
    name = "openai"

    def build_messages(
        self,
        history: list[HistoryItem],
        user_message: str,
        system_instruction: str | None,
    ) -> list[dict]:
        messages: list[dict] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.extend({"role": h.role, "content": h.content} for h in history)
        messages.append({"role": "user", "content": user_message})
        return messages


class GeminiProvider(GenerationProvider):
    name = "gemini"

    def build_messages(
        self,
        history: list[HistoryItem],
        user_message: str,
        system_instruction: str | None,
    ) -> list[dict]:
        # TODO: switch to Gemini's native multi-turn contents once history
        # needs per-turn metadata; callers do not change.
        prompt = flatten_history(history, user_message)
        parts = [{"type": "text", "text": prompt}]
        if system_instruction:
            parts.insert(0, {"type": "text", "text": system_instruction})
        return [{"role": "user", "content": parts}]


def flatten_history(history: list[HistoryItem], user_message: str) -> str:
    """Render history plus the new message as ``role: content`` lines."""
    lines = [f"{h.role}: {h.content}" for h in history]
    lines.append(f"user: {user_message}")
    return "\n".join(lines)


_PROVIDERS: dict[str, type[GenerationProvider]] = {
    OpenAIProvider.name: OpenAIProvider,
    GeminiProvider.name: GeminiProvider,
}


def get_generation_provider(name: str, config: ClipmindConfig) -> GenerationProvider:
    """Return the generation provider registered under *name*.

    Raises:
        ValidationFailure: If *name* is not 'openai' or 'gemini'.
    """
    try:
        cls = _PROVIDERS[name.lower()]
    except KeyError:
        raise ValidationFailure(
            f"Unknown model provider '{name}'. Choose one of: {', '.join(_PROVIDERS)}."
        ) from None
    gen = config.generation
    model = gen.gemini_model if cls is GeminiProvider else gen.openai_model
    return cls(
        model=model,
        max_tokens=gen.max_tokens,
        temperature=gen.temperature,
        timeout=config.timeouts.generation,
    )


def get_embedding_provider(config: ClipmindConfig) -> EmbeddingProvider:
    return EmbeddingProvider(model=config.embedding.model, timeout=config.timeouts.embedding)
