"""Environment-backed lookups for monitor settings.

A setting is read from the process environment first. When it is unset or
blank, the defaults files are consulted in order, first hit per key wins:

1. ``./.env``
2. ``~/.lattice_watch/.env``
3. ``./config/lattice_watch.json``
4. ``~/.lattice_watch/config.json``

The files are read once and cached; ``reset_default_values()`` drops the cache.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar

from .errors import ConfigurationError

_USER_CONFIG_DIRNAME = ".lattice_watch"
_PROJECT_DOTENV = Path(".env")
_PROJECT_JSON = Path("config") / "lattice_watch.json"

_DEFAULT_VALUES: dict[str, str] | None = None

N = TypeVar("N", int, float)


def _load_default_values() -> dict[str, str]:
    from .runtime_helpers import DotenvLoader, JsonConfigLoader

    global _DEFAULT_VALUES
    if _DEFAULT_VALUES is not None:
        return _DEFAULT_VALUES

    user_dir = Path.home() / _USER_CONFIG_DIRNAME
    sources = (
        (DotenvLoader.load_from_file, _PROJECT_DOTENV),
        (DotenvLoader.load_from_file, user_dir / ".env"),
        (JsonConfigLoader.load_from_file, _PROJECT_JSON),
        (JsonConfigLoader.load_from_file, user_dir / "config.json"),
    )
    defaults: dict[str, str] = {}
    for load, path in sources:
        for key, value in load(path).items():
            defaults.setdefault(key, value)

    _DEFAULT_VALUES = defaults
    return defaults


def reset_default_values() -> None:
    """Forget cached defaults so the next lookup re-reads the config files."""
    global _DEFAULT_VALUES
    _DEFAULT_VALUES = None


def env_str(
    name: str,
    or_value: str | None = None,
    *,
    required: bool = False,
    strip: bool = True,
) -> str | None:
    """Fetch a setting as a string: environment first, then the defaults files."""
    value = os.getenv(name)
    if not value or not value.strip():
        value = _load_default_values().get(name)
    if value is not None and strip:
        value = value.strip()

    if not value:
        if required:
            raise ConfigurationError.unset(name)
        return or_value
    return value


def _env_number(name: str, or_value: Optional[N], required: bool, parse: Callable[[str], N], kind: str) -> Optional[N]:
    raw = env_str(name)
    if raw is None:
        if required and or_value is None:
            raise ConfigurationError.unset(name)
        return or_value
    try:
        return parse(raw)
    except ValueError as exc:
        raise ConfigurationError.not_a_number(name, raw, kind) from exc


def env_int(name: str, or_value: int | None = None, *, required: bool = False) -> int | None:
    """Fetch a setting and coerce it to ``int``."""
    return _env_number(name, or_value, required, int, "an integer")


def env_float(name: str, or_value: float | None = None, *, required: bool = False) -> float | None:
    """Fetch a setting and coerce it to ``float``."""
    return _env_number(name, or_value, required, float, "a float")


def env_list(
    name: str,
    *,
    or_value: Sequence[str] | None = None,
    separator: str = ",",
    unique: bool = True,
) -> tuple[str, ...] | None:
    """Fetch a delimited list setting such as ``nano_a, nano_b``.

    Items are stripped and blank items dropped. With ``unique`` only the
    first occurrence of each item is kept.
    """
    from .runtime_helpers import split_list

    raw = env_str(name)
    if raw is None:
        return None if or_value is None else tuple(or_value)
    return split_list(raw, separator, unique=unique)


__all__ = [
    "ConfigurationError",
    "env_float",
    "env_int",
    "env_list",
    "env_str",
    "reset_default_values",
]
