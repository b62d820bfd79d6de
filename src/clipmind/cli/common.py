"""Helpers shared by the clipmind CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from clipmind.cli.errors import err_config, err_no_api_key, render_error
from clipmind.config import ClipmindConfig, ConfigError, load_config
from clipmind.errors import ClipmindError
from clipmind.rag.llm_client import provider_of, validate_api_key
from clipmind.services import Services, build_services

console = Console()


def load_or_exit() -> ClipmindConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def open_services(db: Path | None, *, start_indexer: bool = True) -> Services:
    """Load config and build the service graph against *db* (or the configured path)."""
    config = load_or_exit()
    return build_services(config, db_path=db, start_indexer=start_indexer)


def require_keys(*models: str) -> None:
    """Exit with an actionable message if any model's API key is missing."""
    for model in models:
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(model)))
            raise typer.Exit(1)


def fail(exc: ClipmindError) -> NoReturn:
    console.print(render_error(exc))
    raise typer.Exit(1)
