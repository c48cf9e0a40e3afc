from __future__ import annotations

import typer

from .common import configure_logging
from .subapps.data import data_app
from .subapps.db import db_app
from .subapps.ui import ui_app

app = typer.Typer(help="Ensayo viewer command line interface")
app.add_typer(ui_app, name="ui")
app.add_typer(data_app, name="data")
app.add_typer(db_app, name="db")


@app.callback()
def main(ctx: typer.Context) -> None:
    configure_logging(ctx.invoked_subcommand or "cli")


if __name__ == "__main__":
    app()
