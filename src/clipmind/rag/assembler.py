"""Context assembler: ranked records → one labelled prompt-context block.

Each block carries its provenance (video URL or document name) and the date the
record was saved, so the generation step can honour date-scoped questions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from clipmind.db.models import TRANSCRIPT, Record
from clipmind.rag.ranker import RankedResult

BLOCK_SEPARATOR = "\n\n---\n\n"
NO_CONTEXT_MARKER = "No relevant information was found in the knowledge base."

_STORED_FORMAT = "%Y-%m-%d %H:%M:%S"

_SYSTEM_PROMPT = """\
You are a knowledgeable assistant. Your knowledge base contains transcripts of \
saved short videos and the text of uploaded documents. Answer from the knowledge \
base first and take the conversation history into account. Reply in the \
language the user writes in.

Date rules:
1. Every item in the knowledge base is labelled with the date it was saved.
2. When the user asks about a specific date, use ONLY items whose saved date \
matches that date.
3. If no item was saved on that date, or the items from that date do not cover \
the question, say so plainly (for example "Nothing saved on that date covers \
this topic"). Never substitute items from neighbouring dates.
4. When relevant, mention which saved date your answer is based on.

Knowledge base:
{context}"""


def format_saved_at(created_at: str | None, tz_name: str | None = None) -> str:
    """Render a stored UTC timestamp as ``YYYY-MM-DD HH:MM``.

    Without *tz_name* the stored UTC date is kept as-is and labelled UTC;
    otherwise it is converted to that IANA zone. Unparseable values are
    returned verbatim.
    """
    if not created_at:
        return "unknown date"
    try:
        stamp = datetime.strptime(created_at, _STORED_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return created_at
    if tz_name is None:
        return stamp.strftime("%Y-%m-%d %H:%M UTC")
    return stamp.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M")


def _label(record: Record) -> str:
    if record.kind == TRANSCRIPT:
        return f"Video URL: {record.source_descriptor}"
    return f"Document: {record.source_descriptor}"


def render_block(record: Record, tz_name: str | None = None) -> str:
    saved = format_saved_at(record.created_at, tz_name)
    return f"[Source: {_label(record)}] (Saved: {saved})\n{record.content}"


def assemble(ranked: list[RankedResult[Record]], tz_name: str | None = None) -> str:
    """Join ranked records into one context string.

    Returns NO_CONTEXT_MARKER for an empty list, never an empty string.
    """
    if not ranked:
        return NO_CONTEXT_MARKER
    return BLOCK_SEPARATOR.join(render_block(r.payload, tz_name) for r in ranked)


def build_system_prompt(context: str) -> str:
    """Wrap the assembled context in the answering instructions and date rules."""
    return _SYSTEM_PROMPT.format(context=context)
