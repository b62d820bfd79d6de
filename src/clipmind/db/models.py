"""Domain models for the clipmind database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import ClassVar

TRANSCRIPT = "reel"
DOCUMENT = "doc"


@dataclass
class Tag:
    name: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class Record:
    """Retrievable stored text. Searchable only once *embedding* is set."""

    kind: ClassVar[str] = ""

    id: int | None = None
    embedding: str | None = None  # JSON-encoded vector; None until indexed
    tag_id: int | None = None
    created_at: str | None = None

    @property
    def content(self) -> str:
        raise NotImplementedError

    @property
    def source_descriptor(self) -> str:
        raise NotImplementedError

    @property
    def is_indexed(self) -> bool:
        return self.embedding is not None

    @property
    def embedding_vector(self) -> list[float] | None:
        return json.loads(self.embedding) if self.embedding is not None else None


@dataclass
class Transcript(Record):
    kind: ClassVar[str] = TRANSCRIPT

    url: str = ""
    transcript: str = ""
    summary: str = ""
    cost: str | None = None

    @property
    def content(self) -> str:
        return self.transcript

    @property
    def source_descriptor(self) -> str:
        return self.url


@dataclass
class Document(Record):
    kind: ClassVar[str] = DOCUMENT

    name: str = ""
    filename: str = ""
    mime_type: str = "text/plain"
    text: str = ""

    @property
    def content(self) -> str:
        return self.text

    @property
    def source_descriptor(self) -> str:
        return self.name


@dataclass
class ChatThread:
    title: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class SourceRef:
    """Provenance snapshot stored on assistant messages."""

    id: int
    url: str
    name: str
    type: str

    def to_dict(self) -> dict:
        return {"id": self.id, "url": self.url, "name": self.name, "type": self.type}


@dataclass
class ChatMessage:
    thread_id: int
    role: str
    content: str
    sources: list[SourceRef] | None = None
    id: int | None = None
    created_at: str | None = None

    @property
    def sources_json(self) -> str | None:
        if self.sources is None:
            return None
        return json.dumps([s.to_dict() for s in self.sources], ensure_ascii=False)

