"""clipmind chat / clipmind threads: retrieval-augmented chat from the terminal.

Usage:
  clipmind chat "What did the cooking video say about salt?"
  clipmind chat "And about pepper?" --thread 3 --model gemini
  clipmind chat "Summarise my notes" --tag 2
  clipmind threads list
  clipmind threads show 3
  clipmind threads delete 3 --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from clipmind.cli.common import console, fail, open_services, require_keys
from clipmind.errors import ClipmindError, ThreadNotFound
from clipmind.rag.cost import format_cost

threads_app = typer.Typer(help="List, show and delete chat threads.", no_args_is_help=True)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the knowledge base (default: .clipmind.db)."),
]


def chat_cmd(
    message: Annotated[str, typer.Argument(help="Your question.")],
    thread: Annotated[
        int | None,
        typer.Option("--thread", "-t", help="Continue an existing thread."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Answer provider: openai or gemini."),
    ] = None,
    tag: Annotated[
        int | None,
        typer.Option("--tag", help="Only retrieve from records with this tag id."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Ask a question against your saved transcripts and documents."""
    services = open_services(db, start_indexer=False)
    try:
        try:
            generator = services.provider_factory(
                model or services.config.generation.default_provider
            )
        except ClipmindError as exc:
            fail(exc)
        require_keys(services.embedder.model, generator.model)

        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("Thinking…", total=None)
                result = services.chat.send(
                    message, thread_id=thread, provider=model, tag_id=tag
                )
        except ClipmindError as exc:
            fail(exc)
    finally:
        services.close()

    console.print(Markdown(result.answer))
    if result.sources:
        console.print("\n[bold]Sources[/]")
        for src in result.sources:
            console.print(f"  [dim]{src.type}:{src.id}[/]  {src.name}  {src.url}")
    console.print(
        f"\n[dim]Thread {result.thread_id}  |  "
        f"{result.usage.total_tokens} tokens  |  ${format_cost(result.cost)}[/]"
    )


@threads_app.command("list")
def threads_list(db: _DbOption = None) -> None:
    """List chat threads, most recent first."""
    services = open_services(db, start_indexer=False)
    try:
        threads = services.chat.list_threads()
    finally:
        services.close()

    if not threads:
        console.print("[dim]No chat threads yet. Start one with:  clipmind chat \"...\"[/]")
        return

    table = Table(title="Chat threads", show_lines=False)
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Updated", style="dim")
    for t in threads:
        table.add_row(str(t.id), t.title, t.updated_at or "")
    console.print(table)


@threads_app.command("show")
def threads_show(
    thread_id: Annotated[int, typer.Argument(help="Thread id.")],
    db: _DbOption = None,
) -> None:
    """Print the messages of a thread in order."""
    services = open_services(db, start_indexer=False)
    try:
        if services.repo.get_thread(thread_id) is None:
            fail(ThreadNotFound(thread_id))
        messages = services.chat.get_messages(thread_id)
    finally:
        services.close()

    for m in messages:
        style = "bold cyan" if m.role == "user" else "bold green"
        console.print(f"[{style}]{m.role}[/]  [dim]{m.created_at or ''}[/]")
        console.print(m.content)
        if m.sources:
            names = ", ".join(s.name for s in m.sources)
            console.print(f"[dim]  sources: {names}[/]")
        console.print()


@threads_app.command("delete")
def threads_delete(
    thread_id: Annotated[int, typer.Argument(help="Thread id.")],
    db: _DbOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete a thread and all of its messages."""
    if not yes and not typer.confirm(f"Delete thread {thread_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    services = open_services(db, start_indexer=False)
    try:
        deleted = services.chat.delete_thread(thread_id)
    finally:
        services.close()

    if not deleted:
        fail(ThreadNotFound(thread_id))
    console.print(f"[green]✓[/] Deleted thread {thread_id}")
