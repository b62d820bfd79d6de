"""clipmind CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from clipmind.cli.chat import chat_cmd, threads_app
from clipmind.cli.library import library_app, tags_app
from clipmind.cli.serve import serve_cmd
from clipmind.cli.transcribe import transcribe_cmd
from clipmind.log import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("clipmind")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"clipmind {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="clipmind",
    help=(
        "clipmind: chat with your saved videos and documents.\n\n"
        "  clipmind transcribe  Link → transcript + summary.\n"
        "  clipmind chat        Ask questions against the knowledge base."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """clipmind: chat with your saved videos and documents."""
    configure_logging(verbose=verbose)


app.command("serve")(serve_cmd)
app.command("chat")(chat_cmd)
app.command("transcribe")(transcribe_cmd)
app.add_typer(threads_app, name="threads")
app.add_typer(library_app, name="library")
app.add_typer(tags_app, name="tags")


@app.command("version")
def version_cmd() -> None:
    """Show the installed clipmind version."""
    typer.echo(f"clipmind {_installed_version()}")


if __name__ == "__main__":
    app()
