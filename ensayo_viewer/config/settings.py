"""Central configuration for the recording viewer."""
from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv


class ConfigurationError(RuntimeError):
    """Raised when the configuration file is missing or invalid."""


SAMPLING_METHODS = ("stride", "minmax")
ORDINAL_MODES = ("position", "id")


@dataclass(slots=True)
class DatabaseConfig:
    url: str = "sqlite:///./ensayos.db"
    pool_size: int = 5
    echo: bool = False


@dataclass(slots=True)
class DeviceConfig:
    table: str
    label: str = ""


@dataclass(slots=True)
class SamplingConfig:
    point_budget: int = 10000
    method: str = "stride"
    ordinal: str = "position"
    strict_channels: bool = False


@dataclass(slots=True)
class ZoomConfig:
    debounce_ms: int = 200
    axis_offset_px: int = 60


@dataclass(slots=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def _default_devices() -> List[DeviceConfig]:
    return [
        DeviceConfig("fuente_valores", "Fuente de Alimentación"),
        DeviceConfig("camara_valores", "Cámara Climática"),
        DeviceConfig("motor_valores", "Motor Inteligente"),
    ]


@dataclass(slots=True)
class Settings:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    devices: List[DeviceConfig] = field(default_factory=_default_devices)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    zoom: ZoomConfig = field(default_factory=ZoomConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    demo: bool = False

    @property
    def device_tables(self) -> List[str]:
        return [device.table for device in self.devices]


def _load_file(path: Path) -> Dict[str, object]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file {path} does not exist")
    text = path.read_text(encoding="utf-8")
    try:
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(text) or {}
        if suffix == ".json":
            return json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Invalid configuration format: {exc}") from exc
    raise ConfigurationError("Unsupported configuration format; use YAML or JSON")


def _database_url_from_env(configured: str) -> str:
    override = os.getenv("ENSAYO_VIEWER_DATABASE_URL")
    if override:
        return override
    host = os.getenv("DB_HOST")
    if not host:
        return configured
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "postgres")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "automotive_testing_db")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


def _parse_devices(raw: object) -> List[DeviceConfig]:
    if raw is None:
        return _default_devices()
    if not isinstance(raw, list):
        raise ConfigurationError("`devices` must be a list")
    devices: List[DeviceConfig] = []
    for entry in raw:
        if isinstance(entry, str):
            devices.append(DeviceConfig(table=entry, label=entry))
        elif isinstance(entry, dict):
            table = entry.get("table")
            if not table:
                raise ConfigurationError("Every device entry requires a `table`")
            devices.append(DeviceConfig(table=str(table), label=str(entry.get("label", table))))
        else:
            raise ConfigurationError(f"Invalid device definition: {entry!r}")
    return devices


def _validate(settings: Settings) -> None:
    if settings.sampling.point_budget < 1:
        raise ConfigurationError("sampling.point_budget must be at least 1")
    if settings.sampling.method not in SAMPLING_METHODS:
        raise ConfigurationError(f"sampling.method must be one of {SAMPLING_METHODS}")
    if settings.sampling.ordinal not in ORDINAL_MODES:
        raise ConfigurationError(f"sampling.ordinal must be one of {ORDINAL_MODES}")
    if settings.zoom.debounce_ms < 0:
        raise ConfigurationError("zoom.debounce_ms cannot be negative")
    if settings.server.port <= 0:
        raise ConfigurationError("server.port must be positive")


def load_settings(path: Optional[Path | str] = None) -> Settings:
    load_dotenv()
    candidate_paths: List[Path] = []
    if path:
        explicit = Path(path)
        if not explicit.exists():
            raise ConfigurationError(f"Configuration file {explicit} does not exist")
        candidate_paths.append(explicit)
    env_path = os.getenv("ENSAYO_VIEWER_CONFIG")
    if env_path:
        candidate_paths.append(Path(env_path))
    candidate_paths.append(Path("config/settings.yaml"))

    raw: Dict[str, object] = {}
    for candidate in candidate_paths:
        if candidate.exists():
            raw = _load_file(candidate)
            break

    try:
        database = DatabaseConfig(**raw.get("database", {}))
        devices = _parse_devices(raw.get("devices"))
        sampling = SamplingConfig(**raw.get("sampling", {}))
        zoom = ZoomConfig(**raw.get("zoom", {}))
        server = ServerConfig(**raw.get("server", {}))
    except TypeError as exc:
        raise ConfigurationError(f"Unknown configuration key: {exc}") from exc

    database.url = _database_url_from_env(database.url)
    settings = Settings(
        database=database,
        devices=devices,
        sampling=sampling,
        zoom=zoom,
        server=server,
        demo=bool(raw.get("demo", False)),
    )
    _validate(settings)
    return settings
