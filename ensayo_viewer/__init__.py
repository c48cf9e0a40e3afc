"""Adaptive sampling and overview/detail engine for test bench recordings."""

from __future__ import annotations

from pathlib import Path

__version__ = "0.3.0"

APP_ROOT = Path(__file__).resolve().parents[1]

__all__ = ["APP_ROOT", "__version__"]
