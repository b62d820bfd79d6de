"""clipmind serve: run the HTTP API with uvicorn.

Usage:
  clipmind serve
  clipmind serve --host 0.0.0.0 --port 8000 --db /data/clipmind.db
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from clipmind.api.app import create_app
from clipmind.cli.common import console, load_or_exit, require_keys
from clipmind.services import build_services


def serve_cmd(
    host: Annotated[
        str | None, typer.Option("--host", help="Bind address (default: server.host).")
    ] = None,
    port: Annotated[
        int | None, typer.Option("--port", "-p", help="Port (default: server.port).")
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .clipmind.db)."),
    ] = None,
) -> None:
    """Serve the clipmind HTTP API."""
    config = load_or_exit()
    require_keys(config.embedding.model)

    services = build_services(config, db_path=db)
    app = create_app(services)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"[green]clipmind API[/] on http://{bind_host}:{bind_port}/api")
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")
