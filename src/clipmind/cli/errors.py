"""clipmind rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from clipmind.cli.errors import err_no_api_key, render_error
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from clipmind.errors import (
    ClipmindError,
    DuplicateTag,
    IndexingFailure,
    PersistenceFailure,
    ProviderFailure,
    RecordNotFound,
    ThreadNotFound,
)

_ENV_MAP = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _ENV_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_config(message: str) -> str:
    """Configuration could not be loaded or failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix clipmind.yaml (or ~/.clipmind/config.yaml) and try again."
    )


def err_thread_not_found(thread_id: int) -> str:
    return (
        f"[red]Error:[/] Chat thread {thread_id} does not exist.\n"
        "  Run:  clipmind threads list  to see existing threads,\n"
        "  or omit --thread to start a new one."
    )


def err_record_not_found(kind: str, record_id: int) -> str:
    command = "clipmind tags list" if kind == "tag" else "clipmind library list"
    return (
        f"[yellow]Not found:[/] No {kind} with id {record_id}.\n"
        f"  Run:  {command}  to see what is stored."
    )


def err_duplicate_tag(name: str) -> str:
    return (
        f"[red]Error:[/] A tag named '{name}' already exists.\n"
        "  Pick another name, or run:  clipmind tags list"
    )


def err_provider(exc: ProviderFailure) -> str:
    """An embedding, generation or transcription call failed."""
    who = f" ({exc.provider})" if exc.provider else ""
    return (
        f"[red]Error:[/] Provider call failed{who}: {exc}\n"
        "  Check your API key, network connection and model names, then retry."
    )


def err_persistence(exc: PersistenceFailure) -> str:
    return (
        f"[red]Error:[/] Could not write to the knowledge base: {exc}\n"
        "  Check that the --db path is writable and not locked by another process."
    )


def err_validation(exc: ClipmindError) -> str:
    return f"[red]Error:[/] {exc}\n  Fix the input and try again."


def warn_not_indexed(count: int) -> str:
    """Shown when some saved records have no embedding yet."""
    return (
        f"[yellow]⚠[/] {count} record(s) are not indexed yet and will not be used in chat.\n"
        "  Indexing runs in the background; check again shortly."
    )


def render_error(exc: ClipmindError) -> str:
    """Pick the message helper for *exc*."""
    if isinstance(exc, ThreadNotFound):
        return err_thread_not_found(exc.thread_id)
    if isinstance(exc, RecordNotFound):
        return err_record_not_found(exc.kind, exc.record_id)
    if isinstance(exc, DuplicateTag):
        return err_duplicate_tag(exc.name)
    if isinstance(exc, ProviderFailure):
        return err_provider(exc)
    if isinstance(exc, (PersistenceFailure, IndexingFailure)):
        return err_persistence(exc)  # type: ignore[arg-type]
    return err_validation(exc)
