from __future__ import annotations

import asyncio
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from ensayo_viewer.config.logging_config import setup_logging
from ensayo_viewer.config.settings import ConfigurationError, Settings, load_settings
from ensayo_viewer.errors import ViewerError

from . import APP_ROOT

_CONSOLE = Console()
LOG_DIR = APP_ROOT / "logs" / "cli"


def console() -> Console:
    return _CONSOLE


def configure_logging(name: str) -> None:
    setup_logging(log_file=LOG_DIR / f"{name}.log")


def load_cli_settings(config: Optional[Path], *, demo: bool = False, database_url: Optional[str] = None) -> Settings:
    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        console().print(f"[red]{exc}[/]")
        raise typer.Exit(code=1) from exc
    if demo:
        settings.demo = True
    if database_url:
        settings.database.url = database_url
    return settings


@contextmanager
def domain_errors() -> Iterator[None]:
    """Print domain errors in red and exit with code 1."""
    try:
        yield
    except ViewerError as exc:
        console().print(f"[red]Error:[/] {exc}")
        raise typer.Exit(code=1) from exc


def run_async(coro: Awaitable[Any]) -> Any:
    with domain_errors():
        return asyncio.run(coro)


def render_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*["" if value is None else str(value) for value in row])
    console().print(table)
