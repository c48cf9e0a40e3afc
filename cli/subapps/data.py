from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pandas as pd
import typer

from ui.data_access import build_services, parse_channels, parse_time_range

from ..common import console, domain_errors, load_cli_settings, render_table, run_async

data_app = typer.Typer(help="Query sampled recording data")


@data_app.command("query")
def query(
    ensayo: str = typer.Option(..., "--ensayo", "-e", help="Test identifier"),
    channels: str = typer.Option(..., "--channels", "-c", help="Comma separated, optionally device:channel"),
    start: Optional[str] = typer.Option(None, help="ISO-8601 start (UTC if naive)"),
    end: Optional[str] = typer.Option(None, help="ISO-8601 end (UTC if naive)"),
    max_points: Optional[int] = typer.Option(None, "--max-points", min=1),
    method: Optional[str] = typer.Option(None, help="stride or minmax"),
    out: Optional[Path] = typer.Option(None, help="Also write the points to CSV"),
    demo: bool = typer.Option(False, "--demo"),
    config: Optional[Path] = typer.Option(None),
) -> None:
    settings = load_cli_settings(config, demo=demo)
    with domain_errors():
        services = build_services(settings)
        window = parse_time_range(start, end)
    response = run_async(
        services.get_data(parse_channels(channels), ensayo, window, max_points, method=method)
    )
    console().print_json(json.dumps(response.metadata()))
    if out is not None:
        frame = pd.DataFrame(
            [{"timestamp": point.timestamp.isoformat(), **point.values} for point in response.points]
        )
        out.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(out, index=False)
        console().print(f"[green]{out}[/] ready with {len(frame)} rows")


@data_app.command("stats")
def stats(
    table: str = typer.Argument(..., help="Device table"),
    ensayo: str = typer.Option(..., "--ensayo", "-e"),
    demo: bool = typer.Option(False, "--demo"),
    config: Optional[Path] = typer.Option(None),
) -> None:
    settings = load_cli_settings(config, demo=demo)
    with domain_errors():
        services = build_services(settings)
    result = run_async(services.stats(table, ensayo))
    render_table(
        f"{table} / {ensayo}",
        ["total_records", "start_time", "end_time", "duration_hours"],
        [[result.total_records, result.start_time, result.end_time, result.duration_hours]],
    )


@data_app.command("channels")
def channels(
    demo: bool = typer.Option(False, "--demo"),
    config: Optional[Path] = typer.Option(None),
) -> None:
    settings = load_cli_settings(config, demo=demo)
    with domain_errors():
        services = build_services(settings)
    labels = services.device_labels()
    rows = [
        [device, labels[device], row.column_name, row.display_name, row.unit]
        for device, device_rows in services.all_channels().items()
        for row in device_rows
    ]
    render_table("Channels", ["device", "label", "column", "display name", "unit"], rows)
