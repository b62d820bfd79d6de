"""Tests for rich CLI error messages: every message names a cause and an action."""

from __future__ import annotations

import pytest

from clipmind.cli.errors import (
    err_config,
    err_no_api_key,
    err_record_not_found,
    render_error,
    warn_not_indexed,
)
from clipmind.errors import (
    DuplicateTag,
    EmbeddingFailure,
    PersistenceFailure,
    RecordNotFound,
    ThreadNotFound,
    ValidationFailure,
)


def test_no_api_key_names_env_var():
    assert "export OPENAI_API_KEY=" in err_no_api_key("openai")
    assert "export GEMINI_API_KEY=" in err_no_api_key("gemini")
    assert "export GROQ_API_KEY=" in err_no_api_key("groq")


def test_config_error_points_at_files():
    msg = err_config("retrieval.top_k must be at least 10")
    assert "top_k" in msg
    assert "clipmind.yaml" in msg


def test_record_not_found_suggests_listing_command():
    assert "clipmind tags list" in err_record_not_found("tag", 3)
    assert "clipmind library list" in err_record_not_found("document", 3)


@pytest.mark.parametrize(
    "exc,expected",
    [
        (ThreadNotFound(7), "clipmind threads list"),
        (RecordNotFound("transcript", 2), "clipmind library list"),
        (DuplicateTag("travel"), "'travel' already exists"),
        (EmbeddingFailure("timeout", provider="openai/text-embedding-3-small"), "retry"),
        (PersistenceFailure("disk full"), "writable"),
        (ValidationFailure("URL is required."), "URL is required."),
    ],
)
def test_render_error_picks_actionable_message(exc, expected):
    msg = render_error(exc)
    assert expected in msg
    assert msg.startswith("[")


def test_warn_not_indexed_counts_records():
    assert "3 record(s)" in warn_not_indexed(3)
