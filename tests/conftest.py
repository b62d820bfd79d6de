"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from clipmind.config import ClipmindConfig
from clipmind.db.connection import Database
from clipmind.db.repository import Repository
from clipmind.db.schema import initialize
from clipmind.errors import EmbeddingFailure, GenerationFailure
from clipmind.rag.llm_client import Completion, Usage
from clipmind.rag.providers import EmbeddingProvider, GenerationProvider, HistoryItem


class FakeEmbedder(EmbeddingProvider):
    """Returns a fixed vector per known text; *default* otherwise."""

    def __init__(self, vectors=None, default=None, fail=False):
        super().__init__(model="openai/text-embedding-3-small")
        self.vectors = dict(vectors or {})
        self.default = default if default is not None else [1.0, 0.0]
        self.fail = fail
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingFailure("embedding service down", provider=self.model)
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        return list(self.default)


class FakeGenerator(GenerationProvider):
    """Records every call; title prompts get *title*, everything else *answer*."""

    name = "openai"

    def __init__(self, answer="The answer.", title="Short title", fail=False, usage=None):
        super().__init__(model="openai/gpt-4o-mini")
        self.answer = answer
        self.title = title
        self.fail = fail
        self.usage = usage or Usage(prompt_tokens=100, completion_tokens=20, total_tokens=120)
        self.calls: list[tuple[list[HistoryItem], str, str | None]] = []

    def generate(self, history, user_message, system_instruction=None) -> Completion:
        self.calls.append((list(history), user_message, system_instruction))
        if self.fail:
            raise GenerationFailure("model unavailable", provider=self.model)
        if user_message.startswith("Shorten the following question"):
            return Completion(text=self.title, usage=self.usage)
        return Completion(text=self.answer, usage=self.usage)

    def build_messages(self, history, user_message, system_instruction):
        return []


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".clipmind.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def config():
    return ClipmindConfig()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder


@pytest.fixture
def fake_generator():
    return FakeGenerator
