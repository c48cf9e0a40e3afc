"""Synthetic recordings used by demo mode and ``db seed``."""
from __future__ import annotations

from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from .registry import Channel, ChannelRegistry
from .row_source import FrameRowSource

DEMO_ENSAYOS: List[Tuple[str, str]] = [
    ("recta", "Señal recta"),
    ("senoidal", "Señal senoidal"),
]

DEMO_CHANNELS: Dict[str, List[Tuple[str, str, str]]] = {
    "fuente_valores": [("temp", "Temperatura", "°C"), ("hum", "Humedad", "%")],
    "camara_valores": [("pres", "Presión", "hPa"), ("vel", "Velocidad", "m/s")],
}


def _senoidal() -> pd.DataFrame:
    """Six hours, 100 samples per hour, 36 s apart."""
    hours = np.repeat(np.arange(6), 100)
    i = np.tile(np.arange(100), 6)
    start = pd.Timestamp("2024-01-01T00:00:00Z")
    timestamps = start + pd.to_timedelta(hours, unit="h") + pd.to_timedelta(i * 36, unit="s")
    phase = i * 2 * np.pi
    return pd.DataFrame(
        {
            "timestamp": timestamps,
            "codigo_ensayo": "senoidal",
            "temp": 20 + 5 * np.sin(phase / 100),
            "hum": 50 + 10 * np.cos(phase / 100),
            "pres": 1013 + 20 * np.sin(phase / 50),
            "vel": 50 + 30 * np.sin(phase / 20),
        }
    )


def _recta() -> pd.DataFrame:
    i = np.arange(100)
    timestamps = pd.Timestamp("2024-01-01T00:00:00Z") + pd.to_timedelta(i, unit="s")
    return pd.DataFrame(
        {
            "timestamp": timestamps,
            "codigo_ensayo": "recta",
            "temp": 20 + i * 0.1,
            "hum": 50 + i * 0.2,
            "pres": 1013 + i * 0.05,
            "vel": np.nan,
        }
    )


def demo_frames() -> Dict[str, pd.DataFrame]:
    """Per-device frames with ``timestamp``, ``codigo_ensayo`` and channel columns."""
    combined = pd.concat([_senoidal(), _recta()], ignore_index=True)
    frames: Dict[str, pd.DataFrame] = {}
    for device, channels in DEMO_CHANNELS.items():
        columns = ["timestamp", "codigo_ensayo", *[name for name, _, _ in channels]]
        frames[device] = combined.loc[:, columns].copy()
    return frames


def demo_registry() -> ChannelRegistry:
    return ChannelRegistry(
        {
            device: [Channel(name, display, unit, device) for name, display, unit in channels]
            for device, channels in DEMO_CHANNELS.items()
        }
    )


def demo_sources(*, ordinal: str = "position") -> Dict[str, FrameRowSource]:
    return {device: FrameRowSource(device, frame, ordinal=ordinal) for device, frame in demo_frames().items()}
