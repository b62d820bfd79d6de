"""Advisory cost estimates from a static USD rate table.

Costs are informational only: an unknown model costs 0, never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from clipmind.rag.llm_client import Usage

_PER_MILLION = Decimal(1_000_000)
_QUANT = Decimal("0.000001")
ZERO = Decimal("0").quantize(_QUANT)


@dataclass(frozen=True)
class Rate:
    input: Decimal = Decimal("0")   # per token
    output: Decimal = Decimal("0")  # per token
    minute: Decimal = Decimal("0")  # per audio minute


PRICING: dict[str, Rate] = {
    "gpt-4o-mini": Rate(
        input=Decimal("0.15") / _PER_MILLION, output=Decimal("0.60") / _PER_MILLION
    ),
    "gemini-flash-latest": Rate(
        input=Decimal("0.10") / _PER_MILLION, output=Decimal("0.40") / _PER_MILLION
    ),
    "text-embedding-3-small": Rate(input=Decimal("0.02") / _PER_MILLION),
    "whisper-1": Rate(minute=Decimal("0.006")),
}


def _rate(model: str) -> Rate | None:
    # "openai/gpt-4o-mini" and "gpt-4o-mini" share a rate
    return PRICING.get(model.rsplit("/", 1)[-1].lower())


def _q(value: Decimal) -> Decimal:
    return value.quantize(_QUANT)


def estimate_generation(model: str, usage: Usage) -> Decimal:
    rate = _rate(model)
    if rate is None:
        return ZERO
    return _q(rate.input * usage.prompt_tokens + rate.output * usage.completion_tokens)


def estimate_embedding(model: str, tokens: int) -> Decimal:
    rate = _rate(model)
    if rate is None:
        return ZERO
    return _q(rate.input * max(tokens, 0))


def estimate_transcription(model: str, seconds: float) -> Decimal:
    rate = _rate(model)
    if rate is None:
        return ZERO
    minutes = Decimal(str(max(seconds, 0.0))) / Decimal(60)
    return _q(rate.minute * minutes)


def format_cost(cost: Decimal) -> str:
    """Render a cost the way it is stored and returned: six decimals."""
    return f"{_q(cost):.6f}"


def estimate(operation: str, model: str, amount: Usage | int | float) -> Decimal:
    """Dispatch on *operation*: 'generation' (Usage), 'embedding' (tokens) or
    'transcription' (seconds). Unknown operations cost 0."""
    if operation == "generation" and isinstance(amount, Usage):
        return estimate_generation(model, amount)
    if operation == "embedding" and not isinstance(amount, Usage):
        return estimate_embedding(model, int(amount))
    if operation == "transcription" and not isinstance(amount, Usage):
        return estimate_transcription(model, float(amount))
    return ZERO
