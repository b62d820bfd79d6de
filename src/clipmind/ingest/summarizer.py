"""Transcript summarizer — structured summaries via a GenerationProvider.

Short clips get key points, a summary and suggestions; long recordings also get
per-segment highlights and conclusions.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from clipmind.rag.cost import estimate_generation
from clipmind.rag.llm_client import Usage
from clipmind.rag.providers import GenerationProvider

_SHORT_INSTRUCTION = (
    "You are a professional assistant that turns audio and video transcripts into "
    "notes. Organise the transcript below into: 1. Key points (a list) "
    "2. Summary 3. Suggestions. Reply in the language of the transcript."
)

_LONG_INSTRUCTION = (
    "You are a professional assistant that turns audio and video transcripts into "
    "notes. This is the transcript of a long recording, split into timed segments. "
    "Organise it into: 1. Key points (a list) 2. Overall summary "
    "3. Highlights per segment 4. Key conclusions. Reply in the language of the "
    "transcript."
)


@dataclass(frozen=True)
class Summary:
    text: str
    usage: Usage
    cost: Decimal


class TranscriptSummarizer:
    """Summarize transcripts with the selected generation provider.

    Args:
        provider: Generation provider used for the summary.
    """

    def __init__(self, provider: GenerationProvider) -> None:
        self._provider = provider

    def summarize(self, transcript: str, long_form: bool = False) -> Summary:
        """Return the summary of *transcript*.

        Raises:
            GenerationFailure: If the provider call fails.
        """
        instruction = _LONG_INSTRUCTION if long_form else _SHORT_INSTRUCTION
        result = self._provider.generate([], transcript, instruction)
        return Summary(
            text=result.text,
            usage=result.usage,
            cost=estimate_generation(self._provider.model, result.usage),
        )

    @property
    def model(self) -> str:
        return self._provider.model
