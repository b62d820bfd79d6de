"""clipmind library / clipmind tags: manage saved transcripts, documents and tags.

Saving a record returns immediately after it is stored; its embedding is
computed by the background indexing queue, which is drained before the
command exits.

Usage:
  clipmind library save --url https://... --transcript-file talk.txt --summary "..."
  clipmind library save --document notes.md --tag 2
  clipmind library list
  clipmind library remove reel 4 --yes
  clipmind tags list
  clipmind tags add cooking
  clipmind tags remove 2
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from clipmind.cli.common import console, fail, open_services, require_keys
from clipmind.cli.errors import warn_not_indexed
from clipmind.db.models import DOCUMENT, TRANSCRIPT
from clipmind.errors import ClipmindError

library_app = typer.Typer(help="Save, list and remove knowledge-base records.", no_args_is_help=True)
tags_app = typer.Typer(help="Manage tags used to group records.", no_args_is_help=True)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the knowledge base (default: .clipmind.db)."),
]


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        console.print(
            f"[red]Error:[/] Cannot read '{path}': {exc.strerror or exc}\n"
            "  Check the path and file permissions."
        )
        raise typer.Exit(1)


@library_app.command("save")
def library_save(
    url: Annotated[
        str | None, typer.Option("--url", help="Source link of the transcript.")
    ] = None,
    transcript_file: Annotated[
        Path | None,
        typer.Option("--transcript-file", help="Text file holding the transcript."),
    ] = None,
    summary: Annotated[
        str | None, typer.Option("--summary", help="Summary of the transcript.")
    ] = None,
    document: Annotated[
        Path | None,
        typer.Option("--document", "-d", help="Save a plain-text document instead."),
    ] = None,
    tag: Annotated[int | None, typer.Option("--tag", help="Tag id to attach.")] = None,
    db: _DbOption = None,
) -> None:
    """Save a transcript (or a text document) and index it."""
    services = open_services(db)
    try:
        require_keys(services.embedder.model)
        try:
            if document is not None:
                record = services.library.add_document(
                    name=document.name,
                    content=_read_text(document),
                    filename=document.name,
                    tag_id=tag,
                )
            else:
                record = services.library.save_transcript(
                    url=url or "",
                    transcript=_read_text(transcript_file) if transcript_file else "",
                    summary=summary or "",
                    tag_id=tag,
                )
        except ClipmindError as exc:
            fail(exc)
        console.print(f"[green]✓[/] Saved {record.kind}:{record.id}, indexing…")
    finally:
        services.close()

    stats = services.indexer.stats()
    if stats.failed:
        console.print(warn_not_indexed(stats.failed))
    else:
        console.print(f"[green]✓[/] Indexed {record.kind}:{record.id}")


@library_app.command("list")
def library_list(db: _DbOption = None) -> None:
    """List saved transcripts and documents."""
    services = open_services(db, start_indexer=False)
    try:
        records = [*services.library.history(), *services.library.documents()]
        tags = {t.id: t.name for t in services.library.tags()}
    finally:
        services.close()

    if not records:
        console.print("[dim]The library is empty. Add a record with:  clipmind library save[/]")
        return

    table = Table(title="Library", show_lines=False)
    table.add_column("Kind", no_wrap=True)
    table.add_column("ID", justify="right", no_wrap=True)
    table.add_column("Source", overflow="fold")
    table.add_column("Tag", no_wrap=True)
    table.add_column("Indexed", justify="center")
    table.add_column("Saved", style="dim")
    unindexed = 0
    for r in records:
        if not r.is_indexed:
            unindexed += 1
        table.add_row(
            r.kind,
            str(r.id),
            r.source_descriptor,
            tags.get(r.tag_id, "") if r.tag_id is not None else "",
            "[green]✓[/]" if r.is_indexed else "[yellow]…[/]",
            r.created_at or "",
        )
    console.print(table)
    if unindexed:
        console.print(warn_not_indexed(unindexed))


@library_app.command("remove")
def library_remove(
    kind: Annotated[str, typer.Argument(help="Record kind: reel or doc.")],
    record_id: Annotated[int, typer.Argument(help="Record id.")],
    db: _DbOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a transcript or document from the knowledge base."""
    if kind not in (TRANSCRIPT, DOCUMENT):
        console.print(
            f"[red]Error:[/] Unknown record kind '{kind}'.\n"
            f"  Use '{TRANSCRIPT}' for transcripts or '{DOCUMENT}' for documents."
        )
        raise typer.Exit(1)
    if not yes and not typer.confirm(f"Remove {kind}:{record_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    services = open_services(db, start_indexer=False)
    try:
        services.library.delete(kind, record_id)
    except ClipmindError as exc:
        fail(exc)
    finally:
        services.close()
    console.print(f"[green]✓[/] Removed {kind}:{record_id}")


@tags_app.command("list")
def tags_list(db: _DbOption = None) -> None:
    """List tags."""
    services = open_services(db, start_indexer=False)
    try:
        tags = services.library.tags()
    finally:
        services.close()

    if not tags:
        console.print("[dim]No tags yet. Create one with:  clipmind tags add NAME[/]")
        return
    for t in tags:
        console.print(f"  {t.id:>4}  {t.name}")


@tags_app.command("add")
def tags_add(
    name: Annotated[str, typer.Argument(help="Tag name (unique).")],
    db: _DbOption = None,
) -> None:
    """Create a tag."""
    services = open_services(db, start_indexer=False)
    try:
        tag = services.library.create_tag(name)
    except ClipmindError as exc:
        fail(exc)
    finally:
        services.close()
    console.print(f"[green]✓[/] Created tag {tag.id}: {tag.name}")


@tags_app.command("remove")
def tags_remove(
    tag_id: Annotated[int, typer.Argument(help="Tag id.")],
    db: _DbOption = None,
) -> None:
    """Delete a tag. Records that carried it become untagged."""
    services = open_services(db, start_indexer=False)
    try:
        services.library.delete_tag(tag_id)
    except ClipmindError as exc:
        fail(exc)
    finally:
        services.close()
    console.print(f"[green]✓[/] Removed tag {tag_id}")
