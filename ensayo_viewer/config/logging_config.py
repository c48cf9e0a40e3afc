"""Logging setup shared by the server and the CLI."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .. import APP_ROOT

LOG_DIR = APP_ROOT / "logs"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> Path:
    """Configure a rotating file logger plus console echo."""
    target = log_file or LOG_DIR / "ensayo_viewer.log"
    target.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        target,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[handler, console_handler],
        force=True,
    )
    return target
