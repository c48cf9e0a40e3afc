"""CLI tests using Typer's runner."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import pandas as pd
import pytest
from sqlalchemy import create_engine, text
from typer.testing import CliRunner

from tests.conftest import get_test_logger

logger = get_test_logger(__name__)
logger.info("Starting tests for CLI module")


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> CliRunner:
    from cli import app as cli_app

    monkeypatch.setattr(cli_app, "configure_logging", lambda *_: None)
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def test_cli_help(runner: CliRunner) -> None:
    """Base --help lists the command groups."""
    from cli import app as cli_app

    result = runner.invoke(cli_app.app, ["--help"])
    assert result.exit_code == 0
    assert "Ensayo viewer" in result.stdout
    for group in ("ui", "data", "db"):
        assert group in result.stdout


def test_db_seed_writes_demo_recordings(runner: CliRunner, tmp_path: Path) -> None:
    """``db seed`` creates device tables and the reference table."""
    from cli import app as cli_app

    url = f"sqlite:///{tmp_path / 'seed.db'}"
    result = runner.invoke(cli_app.app, ["db", "seed", "--database-url", url])
    assert result.exit_code == 0, result.stdout

    engine = create_engine(url)
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT COUNT(*) FROM fuente_valores")).scalar_one()
        codes = [row[0] for row in conn.execute(text("SELECT codigo_ensayo FROM ensayos ORDER BY codigo_ensayo"))]
        units = [row[0] for row in conn.execute(text("SELECT unidad FROM camara_descripcion ORDER BY canal_id"))]
    engine.dispose()
    assert rows == 700
    assert codes == ["recta", "senoidal"]
    assert units == ["hPa", "m/s"]

    again = runner.invoke(cli_app.app, ["db", "seed", "--database-url", url, "--replace"])
    assert again.exit_code == 0
    tables = runner.invoke(cli_app.app, ["db", "tables", "--database-url", url])
    assert "fuente_valores" in tables.stdout


def test_data_query_demo(runner: CliRunner, tmp_path: Path) -> None:
    """``data query`` prints metadata and writes the merged points."""
    from cli import app as cli_app

    out = tmp_path / "out" / "points.csv"
    result = runner.invoke(
        cli_app.app,
        [
            "data",
            "query",
            "--demo",
            "--ensayo",
            "senoidal",
            "--channels",
            "temp,camara_valores:pres",
            "--max-points",
            "50",
            "--out",
            str(out),
        ],
    )
    assert result.exit_code == 0, result.stdout
    assert "samplingRate" in result.stdout
    frame = pd.read_csv(out)
    assert len(frame) == 100
    assert {"timestamp", "temp", "pres"} <= set(frame.columns)


def test_data_query_unknown_channel_exits_1(runner: CliRunner) -> None:
    """Domain errors print a message and exit with code 1."""
    from cli import app as cli_app

    result = runner.invoke(cli_app.app, ["data", "query", "--demo", "-e", "senoidal", "-c", "nope"])
    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_data_stats_and_channels(runner: CliRunner) -> None:
    """Stats and channel listings render as tables."""
    from cli import app as cli_app

    stats = runner.invoke(cli_app.app, ["data", "stats", "fuente_valores", "--ensayo", "recta", "--demo"])
    channels = runner.invoke(cli_app.app, ["data", "channels", "--demo"])

    assert stats.exit_code == 0 and "100" in stats.stdout
    assert channels.exit_code == 0 and "pres" in channels.stdout


def test_ui_start_uses_settings(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    """``ui start`` forwards host, port and demo settings to the server."""
    from cli import app as cli_app

    calls: Dict[str, object] = {}

    def _fake_start(host, port, open_browser=True, settings=None) -> None:
        calls["start"] = (host, port, open_browser, settings.demo)

    monkeypatch.setattr("ui.server.start_ui", _fake_start)
    result = runner.invoke(cli_app.app, ["ui", "start", "--demo", "--port", "9999", "--no-open"])

    assert result.exit_code == 0, result.stdout
    assert calls["start"] == ("127.0.0.1", 9999, False, True)


@pytest.mark.parametrize("command", ["seed", "tables"])
def test_db_bad_url_exits_1(runner: CliRunner, command: str) -> None:
    """An unusable database URL prints a one-line error instead of a traceback."""
    from cli import app as cli_app

    result = runner.invoke(cli_app.app, ["db", command, "--database-url", "nope://x"])
    assert result.exit_code == 1
    assert "Error" in result.stdout
    assert "Traceback" not in result.stdout
