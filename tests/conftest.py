"""Shared pytest configuration and fixtures for the ensayo viewer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator

import pandas as pd
import pytest
from sqlalchemy import Engine

from ensayo_viewer.infrastructure.database import init_engine
from ensayo_viewer.infrastructure.registry import Channel, ChannelRegistry
from ensayo_viewer.infrastructure.row_source import FrameRowSource
from ensayo_viewer.processing.executor import QueryExecutor
from ensayo_viewer.processing.orchestrator import FetchOrchestrator
from tests.helpers import BASE_TIME, DEVICE_CHANNELS, build_device_frame, seed_database

LOGS_ROOT = Path(__file__).resolve().parents[1] / "logs" / "tests"
SESSION_LOG = LOGS_ROOT / "pytest.session.log"
_MODULE_HANDLERS: Dict[str, logging.Handler] = {}


def _initialise_logging() -> None:
    LOGS_ROOT.mkdir(parents=True, exist_ok=True)
    (LOGS_ROOT / ".gitkeep").touch(exist_ok=True)

    handler = logging.FileHandler(SESSION_LOG, mode="w", encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)


def get_test_logger(module_name: str) -> logging.Logger:
    """Return a logger writing into ``logs/tests/<module>.log``."""
    normalised = module_name.replace("tests.", "")
    logger = logging.getLogger(f"tests.{normalised}")
    logger.setLevel(logging.INFO)
    if normalised not in _MODULE_HANDLERS:
        LOGS_ROOT.mkdir(parents=True, exist_ok=True)
        log_path = LOGS_ROOT / f"{normalised}.log"
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
        _MODULE_HANDLERS[normalised] = handler
    return logger


@pytest.hookimpl(tryfirst=True)
def pytest_configure(config: pytest.Config) -> None:  # noqa: D401 - pytest hook
    _initialise_logging()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Iterable[pytest.TestReport]:
    outcome = yield
    report = outcome.get_result()
    if report.outcome != "failed":
        return
    module = getattr(item, "module", None)
    module_name = getattr(module, "__name__", "tests")
    target = LOGS_ROOT / f"{module_name.split('.')[-1]}.log"
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a", encoding="utf-8") as handle:
        handle.write("\n=== TEST FAILURE ===\n")
        handle.write(f"nodeid: {item.nodeid}\n")
        handle.write(f"phase: {report.when}\n")
        handle.write(str(report.longrepr))
        handle.write("\n")


@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def clear_viewer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "ENSAYO_VIEWER_CONFIG",
        "ENSAYO_VIEWER_DATABASE_URL",
        "DB_HOST",
        "DB_PORT",
        "DB_NAME",
        "DB_USER",
        "DB_PASSWORD",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def device_frames() -> Dict[str, pd.DataFrame]:
    """Two devices; ``T1`` has 40 rows each, ``fuente_valores`` also stores ``T2`` first."""
    earlier = build_device_frame("T2", 10, ["temp", "hum"], start=BASE_TIME - pd.Timedelta(days=1))
    fuente = build_device_frame("T1", 40, ["temp", "hum"])
    camara = build_device_frame("T1", 40, ["pres", "vel"], start=BASE_TIME + pd.Timedelta(milliseconds=500))
    return {
        "fuente_valores": pd.concat([earlier, fuente], ignore_index=True),
        "camara_valores": camara,
    }


@pytest.fixture
def registry() -> ChannelRegistry:
    return ChannelRegistry(
        {
            device: [Channel(name, display, unit, device) for name, display, unit in channels]
            for device, channels in DEVICE_CHANNELS.items()
        }
    )


@pytest.fixture
def frame_sources(device_frames: Dict[str, pd.DataFrame]) -> Dict[str, FrameRowSource]:
    return {device: FrameRowSource(device, frame) for device, frame in device_frames.items()}


@pytest.fixture
def executor(frame_sources: Dict[str, FrameRowSource]) -> QueryExecutor:
    return QueryExecutor(frame_sources)


@pytest.fixture
def orchestrator(registry: ChannelRegistry, executor: QueryExecutor) -> FetchOrchestrator:
    return FetchOrchestrator(registry, executor)


@pytest.fixture
def sqlite_engine(tmp_path: Path, device_frames: Dict[str, pd.DataFrame]) -> Iterator[Engine]:
    """On-disk SQLite database holding ``device_frames`` and the ``ensayos`` table."""
    engine = init_engine(f"sqlite:///{tmp_path / 'ensayos.db'}")
    yield seed_database(engine, device_frames)
    engine.dispose()


__all__ = [
    "get_test_logger",
]
