"""Shared helper utilities for the ensayo viewer test-suite."""

from .data import (
    BASE_TIME,
    DEVICE_CHANNELS,
    build_device_frame,
    build_points,
    build_response,
    seed_database,
    seed_device,
)
from .mocks import (
    CountingRowSource,
    FailingRowSource,
    FlakyRowSource,
    GatedOrchestrator,
    ManualScheduler,
)

__all__ = [
    "BASE_TIME",
    "DEVICE_CHANNELS",
    "build_device_frame",
    "build_points",
    "build_response",
    "seed_database",
    "seed_device",
    "CountingRowSource",
    "FailingRowSource",
    "FlakyRowSource",
    "GatedOrchestrator",
    "ManualScheduler",
]
