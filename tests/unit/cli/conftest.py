"""CLI fixtures: run commands against a tmp database with fake providers."""

from __future__ import annotations

import pytest

from clipmind.rag.providers import get_generation_provider
from clipmind.services import build_services


@pytest.fixture
def cli_env(tmp_path, monkeypatch, fake_embedder, fake_generator):
    """Chdir into tmp_path, set API keys and inject fake providers.

    Returns the generator shared by every command so tests can inspect calls.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("GEMINI_API_KEY", "gm-test")
    monkeypatch.delenv("CLIPMIND_DB", raising=False)
    monkeypatch.setattr(
        "clipmind.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global-config.yaml"
    )
    generator = fake_generator(answer="Salt generously.", title="Pasta salt")
    embedder = fake_embedder(default=[1.0, 0.0])

    def _build(config, db_path=None, start_indexer=True):
        return build_services(
            config,
            db_path=db_path,
            embedder=embedder,
            provider_factory=lambda name: (
                generator if name in ("openai", "gemini") else get_generation_provider(name, config)
            ),
            start_indexer=start_indexer,
        )

    monkeypatch.setattr("clipmind.cli.common.build_services", _build)
    monkeypatch.setattr("clipmind.cli.serve.build_services", _build)
    return generator
