from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from sqlalchemy.exc import SQLAlchemyError

from ensayo_viewer.errors import SourceUnavailable
from ensayo_viewer.infrastructure import database
from ensayo_viewer.infrastructure.demo import DEMO_CHANNELS, DEMO_ENSAYOS, demo_frames

from ..common import console, domain_errors, load_cli_settings, render_table

db_app = typer.Typer(help="Database maintenance")


@db_app.command("seed")
def seed(
    config: Optional[Path] = typer.Option(None),
    database_url: Optional[str] = typer.Option(None, "--database-url", help="Override the configured URL"),
    replace: bool = typer.Option(False, "--replace", help="Drop existing demo rows first"),
) -> None:
    """Create the schema and write the demo recordings."""
    settings = load_cli_settings(config, database_url=database_url)
    with domain_errors():
        engine = database.init_engine(settings.database.url)
        try:
            database.upsert_ensayos(engine, DEMO_ENSAYOS)
            frames = demo_frames()
            for device, channels in DEMO_CHANNELS.items():
                table = database.create_device_tables(engine, device, channels)
                if replace:
                    with engine.begin() as conn:
                        conn.execute(table.delete())
                frame = frames[device].copy()
                frame["timestamp"] = frame["timestamp"].dt.tz_convert("UTC").dt.tz_localize(None)
                frame.to_sql(device, engine, if_exists="append", index=False)
                console().print(f"[green]{device}[/]: {len(frame)} rows")
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Seeding failed: {exc}") from exc
    console().print(f"Seeded {settings.database.url}")


@db_app.command("tables")
def tables(
    config: Optional[Path] = typer.Option(None),
    database_url: Optional[str] = typer.Option(None, "--database-url"),
) -> None:
    settings = load_cli_settings(config, database_url=database_url)
    with domain_errors():
        engine = database.init_engine(settings.database.url)
        try:
            names = database.list_tables(engine)
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Cannot list tables: {exc}") from exc
    render_table("Tables", ["table_name"], [[name] for name in names])
