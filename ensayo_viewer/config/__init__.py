"""Configuration loading and logging setup."""

from .logging_config import setup_logging
from .settings import ConfigurationError, DeviceConfig, Settings, load_settings

__all__ = ["ConfigurationError", "DeviceConfig", "Settings", "load_settings", "setup_logging"]
