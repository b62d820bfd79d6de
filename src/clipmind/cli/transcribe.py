"""clipmind transcribe: link or audio file → transcript + summary, optionally saved.

Links need yt-dlp on PATH; long mode needs ffmpeg.

Usage:
  clipmind transcribe https://www.instagram.com/reel/...
  clipmind transcribe https://www.youtube.com/watch?v=... --long --save --tag 2
  clipmind transcribe ./meeting.m4a --long
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.progress import Progress, SpinnerColumn, TextColumn

from clipmind.cli.common import console, fail, open_services, require_keys
from clipmind.errors import ClipmindError
from clipmind.ingest.transcriber import (
    transcribe_and_summarize,
    transcribe_file_and_summarize,
)
from clipmind.rag.cost import format_cost


def transcribe_cmd(
    source: Annotated[str, typer.Argument(help="Video link or local audio/video file.")],
    long: Annotated[
        bool,
        typer.Option("--long", help="Long recording: split into segments before transcribing."),
    ] = False,
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Summary provider: openai or gemini."),
    ] = None,
    save: Annotated[
        bool,
        typer.Option("--save", help="Save the transcript to the library and index it."),
    ] = False,
    tag: Annotated[
        int | None, typer.Option("--tag", help="Tag id to attach when saving.")
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .clipmind.db)."),
    ] = None,
) -> None:
    """Transcribe a link or an audio file and summarize the transcript."""
    local = _local_file(source)
    services = open_services(db, start_indexer=save)
    try:
        try:
            summarizer = services.summarizer(model)
        except ClipmindError as exc:
            fail(exc)
        keys = [services.transcriber.model, summarizer.model]
        if save:
            keys.append(services.embedder.model)
        require_keys(*keys)

        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("Transcribing…", total=None)
                if local is not None:
                    result = transcribe_file_and_summarize(
                        services.transcriber, summarizer, local, long_form=long
                    )
                else:
                    result = transcribe_and_summarize(
                        services.transcriber, summarizer, source, long_form=long
                    )
            record = None
            if save:
                record = services.library.save_transcript(
                    url=local.resolve().as_uri() if local is not None else source,
                    transcript=result.transcript,
                    summary=result.summary,
                    tag_id=tag,
                    cost=format_cost(result.cost),
                )
        except ClipmindError as exc:
            fail(exc)
    finally:
        services.close()

    console.print("[bold]Summary[/]")
    console.print(Markdown(result.summary))
    console.print(f"\n[bold]Transcript[/]\n{result.transcript}")
    console.print(
        f"\n[dim]{result.usage.total_tokens} tokens  |  ${format_cost(result.cost)}[/]"
    )
    if record is not None:
        console.print(f"[green]✓[/] Saved {record.kind}:{record.id}")


def _local_file(source: str) -> Path | None:
    """Return *source* as a path when it names an existing file, else None."""
    if "://" in source:
        return None
    path = Path(source).expanduser()
    return path if path.is_file() else None
