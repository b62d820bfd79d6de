"""LiteLLM client wrapper with retry, timeouts, and API key validation.

All LLM, embedding and speech-to-text calls route through this module.
Usage metadata is normalised here so callers never see a missing count.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a LiteLLM model string ('openai' if none)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# Result types
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Usage:
    """Token accounting for one generation call. Counts are never None."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_raw(cls, raw: Any) -> Usage:
        """Build from a LiteLLM usage object or dict; absent fields become 0."""
        if raw is None:
            return cls()

        def _get(name: str) -> int:
            value = raw.get(name) if isinstance(raw, dict) else getattr(raw, name, None)
            try:
                return int(value or 0)
            except (TypeError, ValueError):
                return 0

        prompt = _get("prompt_tokens")
        completion = _get("completion_tokens")
        total = _get("total_tokens") or prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class Completion:
    text: str
    usage: Usage


@dataclass(frozen=True)
class Transcription:
    text: str
    duration: float  # seconds; 0.0 when the provider does not report it


# ------------------------------------------------------------------
# Calls
# ------------------------------------------------------------------


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    num_retries: int = 0,
    timeout: float | None = None,
) -> Completion:
    """Call litellm.completion() and return text plus normalised usage.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature (0 = deterministic).
        num_retries: Retries on transient errors (exponential backoff). One
            answer per call either way.
        timeout: Request timeout in seconds.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
        litellm.exceptions.Timeout: If the request exceeds *timeout*.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
        timeout=timeout,
    )
    text = response.choices[0].message.content or ""
    return Completion(text=text, usage=Usage.from_raw(getattr(response, "usage", None)))


def embed(
    model: str, text: str, num_retries: int = 0, timeout: float | None = None
) -> list[float]:
    """Call litellm.embedding() and return the embedding vector.

    The input is sent unchanged; truncation is the caller's responsibility.
    """
    response = litellm.embedding(
        model=model,
        input=[text],
        num_retries=num_retries,
        timeout=timeout,
    )
    return list(response.data[0]["embedding"])


def transcribe(
    model: str,
    path: Path | str,
    language: str | None = None,
    timeout: float | None = None,
) -> Transcription:
    """Call litellm.transcription() on an audio file.

    Requests ``verbose_json`` so the audio duration is available for costing.
    """
    kwargs: dict[str, Any] = {"response_format": "verbose_json"}
    if language:
        kwargs["language"] = language
    if timeout is not None:
        kwargs["timeout"] = timeout

    with open(path, "rb") as audio_file:
        response = litellm.transcription(model=model, file=audio_file, **kwargs)

    duration = getattr(response, "duration", None)
    if duration is None and hasattr(response, "get"):
        duration = response.get("duration")
    return Transcription(text=response.text or "", duration=float(duration or 0.0))


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)
