"""Helper modules for runtime configuration."""

from .dotenv_loader import DotenvLoader
from .json_config_loader import JsonConfigLoader
from .list_values import split_list

__all__ = [
    "DotenvLoader",
    "JsonConfigLoader",
    "split_list",
]
