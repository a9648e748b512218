"""Configuration for the confirmation monitor."""

from .errors import ConfigurationError
from .runtime import env_float, env_int, env_list, env_str, reset_default_values
from .settings import DEFAULT_WS_URL, MonitorSettings, load_monitor_settings

__all__ = [
    "ConfigurationError",
    "DEFAULT_WS_URL",
    "MonitorSettings",
    "env_float",
    "env_int",
    "env_list",
    "env_str",
    "load_monitor_settings",
    "reset_default_values",
]
