"""Tests for ChatSession: one retrieval-augmented chat turn."""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from clipmind.chat.session import PLACEHOLDER_TITLE, ChatSession, TurnState, clean_title
from clipmind.db.models import DOCUMENT, TRANSCRIPT, Document, Transcript
from clipmind.errors import (
    EmbeddingFailure,
    GenerationFailure,
    ThreadNotFound,
    ValidationFailure,
)
from clipmind.rag.assembler import NO_CONTEXT_MARKER


@pytest.fixture
def generator(fake_generator):
    return fake_generator(answer="Use a lot of salt.", title="“Pasta salt”")


@pytest.fixture
def session(repo, config, fake_embedder, generator):
    embedder = fake_embedder(default=[1.0, 0.0])
    return ChatSession(repo, embedder, lambda name: generator, config)


def _indexed_transcript(repo, vector, url="https://example.com/reel/1", tag_id=None):
    record = repo.add_transcript(
        Transcript(url=url, transcript=f"transcript of {url}", summary="s", tag_id=tag_id)
    )
    repo.set_embedding(TRANSCRIPT, record.id, vector)
    return record


def _indexed_document(repo, vector, name="notes.md"):
    record = repo.add_document(Document(name=name, filename=f"u-{name}", text=f"text of {name}"))
    repo.set_embedding(DOCUMENT, record.id, vector)
    return record


# ------------------------------------------------------------------
# New threads
# ------------------------------------------------------------------


def test_new_thread_turn_persists_both_messages(session, repo):
    result = session.send("How much salt for pasta?")

    assert result.is_new_thread
    assert result.answer == "Use a lot of salt."
    messages = repo.list_messages(result.thread_id)
    assert [(m.role, m.content) for m in messages] == [
        ("user", "How much salt for pasta?"),
        ("assistant", "Use a lot of salt."),
    ]
    assert repo.get_thread(result.thread_id).title == "Pasta salt"
    assert result.states[-1] is TurnState.PERSISTED


def test_two_turns_make_four_messages(session, repo):
    first = session.send("Question one")
    second = session.send("Question two", thread_id=first.thread_id)

    assert second.thread_id == first.thread_id
    assert not second.is_new_thread
    assert len(repo.list_messages(first.thread_id)) == 4


def test_existing_thread_gets_no_new_title(session, repo, generator):
    first = session.send("Question one")
    calls_before = len(generator.calls)
    session.send("Question two", thread_id=first.thread_id)

    assert len(generator.calls) == calls_before + 1
    assert repo.get_thread(first.thread_id).title == "Pasta salt"


def test_history_is_passed_to_generator(session, generator):
    first = session.send("Question one")
    session.send("Question two", thread_id=first.thread_id)

    history, message, _ = generator.calls[-1]
    assert [(h.role, h.content) for h in history] == [
        ("user", "Question one"),
        ("assistant", "Use a lot of salt."),
    ]
    assert message == "Question two"


def test_history_limited_to_most_recent_messages(repo, config, fake_embedder, generator):
    config.chat.history_limit = 2
    session = ChatSession(repo, fake_embedder(), lambda name: generator, config)
    first = session.send("q1")
    session.send("q2", thread_id=first.thread_id)
    session.send("q3", thread_id=first.thread_id)

    history, _, _ = generator.calls[-1]
    assert [h.content for h in history] == ["q2", "Use a lot of salt."]


# ------------------------------------------------------------------
# Retrieval
# ------------------------------------------------------------------


def test_sources_ranked_by_similarity(session, repo):
    a = _indexed_transcript(repo, [1.0, 0.0], url="https://example.com/a")
    b = _indexed_document(repo, [0.0, 1.0])
    repo.add_transcript(Transcript(url="https://example.com/unindexed", transcript="t", summary="s"))

    result = session.send("Which is closest?")

    assert [(s.type, s.id) for s in result.sources] == [(TRANSCRIPT, a.id), (DOCUMENT, b.id)]
    assert result.sources[0].name == "Original video"
    assert result.sources[0].url == "https://example.com/a"
    assert result.sources[1].name == "notes.md"
    assert result.sources[1].url == ""


def test_document_source_links_to_configured_upload_host(repo, config, fake_embedder, generator):
    config.chat.uploads_base_url = "https://files.example.com/uploads/"
    session = ChatSession(repo, fake_embedder(default=[0.0, 1.0]), lambda name: generator, config)
    _indexed_document(repo, [0.0, 1.0])

    result = session.send("Where are my notes?")

    assert result.sources[0].url == "https://files.example.com/uploads/u-notes.md"


def test_context_includes_ranked_blocks(session, repo, generator):
    _indexed_transcript(repo, [1.0, 0.0])
    session.send("What is in the reel?")

    system_instruction = generator.calls[-1][2]
    assert "[Source: Video URL: https://example.com/reel/1]" in system_instruction
    assert "transcript of https://example.com/reel/1" in system_instruction


def test_empty_knowledge_base_still_answers(session, generator):
    result = session.send("Anything?")
    assert result.sources == []
    assert NO_CONTEXT_MARKER in generator.calls[-1][2]


def test_tag_filter_restricts_sources(session, repo):
    tag = repo.add_tag("cooking")
    tagged = _indexed_transcript(repo, [0.0, 1.0], url="https://example.com/tagged", tag_id=tag.id)
    _indexed_transcript(repo, [1.0, 0.0], url="https://example.com/other")

    result = session.send("Cooking question", tag_id=tag.id)
    assert [s.id for s in result.sources] == [tagged.id]


def test_sources_snapshot_stored_on_assistant_message(session, repo):
    _indexed_transcript(repo, [1.0, 0.0])
    result = session.send("q")
    assistant = repo.list_messages(result.thread_id)[-1]
    assert assistant.sources == result.sources


def test_top_k_bounds_sources(session, repo, config):
    for i in range(config.retrieval.top_k + 3):
        _indexed_transcript(repo, [1.0, i / 100], url=f"https://example.com/{i}")
    result = session.send("q")
    assert len(result.sources) == config.retrieval.top_k


# ------------------------------------------------------------------
# Usage and cost
# ------------------------------------------------------------------


def test_usage_and_cost_cover_title_and_answer(session):
    result = session.send("q")
    # FakeGenerator reports 100 in / 20 out per call; two calls on a new thread
    assert result.usage.prompt_tokens == 200
    assert result.usage.completion_tokens == 40
    assert result.cost > Decimal("0")
    assert result.cost == result.cost.quantize(Decimal("0.000001"))


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------


def test_blank_message_rejected(session):
    with pytest.raises(ValidationFailure, match="Message is required"):
        session.send("   ")


def test_unknown_thread_rejected(session, repo):
    with pytest.raises(ThreadNotFound):
        session.send("q", thread_id=999)
    assert repo.list_threads() == []


def test_failed_generation_persists_nothing(repo, config, fake_embedder, fake_generator):
    session = ChatSession(repo, fake_embedder(), lambda name: fake_generator(fail=True), config)
    with pytest.raises(GenerationFailure):
        session.send("q")
    assert repo.list_threads() == []


def test_failed_generation_on_existing_thread_keeps_history_intact(
    repo, config, fake_embedder, fake_generator
):
    good = fake_generator()
    bad = fake_generator(fail=True)
    providers = {"openai": good, "gemini": bad}
    session = ChatSession(repo, fake_embedder(), providers.__getitem__, config)

    first = session.send("q1", provider="openai")
    with pytest.raises(GenerationFailure):
        session.send("q2", thread_id=first.thread_id, provider="gemini")
    assert len(repo.list_messages(first.thread_id)) == 2


def test_failed_embedding_persists_nothing(repo, config, fake_embedder, generator):
    session = ChatSession(repo, fake_embedder(fail=True), lambda name: generator, config)
    with pytest.raises(EmbeddingFailure):
        session.send("q")
    assert repo.list_threads() == []
    assert generator.calls == []


class _TitleFailingGenerator:
    """Wraps a fake generator so only the title prompt fails."""

    def __init__(self, inner):
        self.inner = inner
        self.model = inner.model

    def generate(self, history, user_message, system_instruction=None):
        if user_message.startswith("Shorten the following question"):
            raise GenerationFailure("title model hiccup", provider=self.model)
        return self.inner.generate(history, user_message, system_instruction)


def test_title_failure_falls_back_to_message(repo, config, fake_embedder, generator):
    flaky = _TitleFailingGenerator(generator)
    session = ChatSession(repo, fake_embedder(), lambda name: flaky, config)

    result = session.send("What did the cat video say about naps?")

    assert result.answer == "Use a lot of salt."
    assert TurnState.PERSISTED in result.states
    assert repo.get_thread(result.thread_id).title == "What did the cat video say abo"
    assert result.usage.total_tokens == 120
    assert len(repo.list_messages(result.thread_id)) == 2


def test_provider_selection(repo, config, fake_embedder, fake_generator):
    chosen = []

    def factory(name):
        chosen.append(name)
        return fake_generator()

    session = ChatSession(repo, fake_embedder(), factory, config)
    session.send("q", provider="gemini")
    session.send("q")
    assert chosen == ["gemini", config.generation.default_provider]


# ------------------------------------------------------------------
# Concurrency
# ------------------------------------------------------------------


def test_concurrent_turns_on_one_thread_do_not_interleave(session, repo):
    first = session.send("q0")
    errors = []

    def _turn(i):
        try:
            session.send(f"q{i}", thread_id=first.thread_id)
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    workers = [threading.Thread(target=_turn, args=(i,)) for i in range(1, 6)]
    for w in workers:
        w.start()
    for w in workers:
        w.join()

    assert errors == []
    roles = [m.role for m in repo.list_messages(first.thread_id)]
    assert roles == ["user", "assistant"] * 6
    assert len(session._locks) == 0


def test_thread_locks_released_after_turns(session):
    result = session.send("q")
    session.send("again", thread_id=result.thread_id)
    session.delete_thread(result.thread_id)
    assert len(session._locks) == 0


# ------------------------------------------------------------------
# Threads
# ------------------------------------------------------------------


def test_delete_thread(session, repo):
    result = session.send("q")
    assert session.delete_thread(result.thread_id) is True
    assert session.get_messages(result.thread_id) == []
    assert session.delete_thread(result.thread_id) is False


def test_list_threads_most_recent_first(session):
    a = session.send("first")
    b = session.send("second")
    session.send("again", thread_id=a.thread_id)
    ids = [t.id for t in session.list_threads()]
    assert set(ids) == {a.thread_id, b.thread_id}


# ------------------------------------------------------------------
# clean_title
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('"Pasta salt"', "Pasta salt"),
        ("「パスタ」", "パスタ"),
        ("‘Salt’ tips", "Salt tips"),
        ("  plain  ", "plain"),
    ],
)
def test_clean_title_strips_quotes(raw, expected):
    assert clean_title(raw, "message") == expected


def test_clean_title_falls_back_to_message():
    assert clean_title('""', "x" * 50) == "x" * 30


def test_clean_title_placeholder_when_all_blank():
    assert clean_title("", "   ") == PLACEHOLDER_TITLE
