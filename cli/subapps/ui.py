from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from ..common import console, load_cli_settings

ui_app = typer.Typer(help="Launch the recording viewer API")


@ui_app.command("start")
def start_ui(
    host: Optional[str] = typer.Option(None, "--host", "-h"),
    port: Optional[int] = typer.Option(None, "--port", "-p"),
    open_browser: bool = typer.Option(False, "--open/--no-open", help="Open the API docs in a browser"),
    demo: bool = typer.Option(False, "--demo", help="Serve the synthetic demo recordings"),
    config: Optional[Path] = typer.Option(None, help="Settings file (YAML or JSON)"),
) -> None:
    """Start the FastAPI server."""
    from ui.server import start_ui as run_server

    settings = load_cli_settings(config, demo=demo)
    host = host or settings.server.host
    port = port or settings.server.port
    console().print(f"Starting API server on [cyan]http://{host}:{port}[/]")

    try:
        run_server(host, port, open_browser=open_browser, settings=settings)
    except KeyboardInterrupt:
        console().print("Shutting down.")
