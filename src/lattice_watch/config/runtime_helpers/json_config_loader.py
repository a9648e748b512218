"""JSON configuration file loading utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from ..errors import ConfigurationError


class JsonConfigLoader:
    """Loads flat JSON objects mapping setting names to scalar values."""

    @staticmethod
    def load_from_file(path: Path) -> Dict[str, str]:
        """
        Load configuration from a JSON file.

        Values are normalized to strings so they can be coerced the same way
        as environment variables.

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        if not path.exists():
            return {}

        try:
            payload = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Failed to parse JSON config {path}") from exc
        except OSError as exc:
            raise ConfigurationError.unreadable_file("JSON config", path) from exc

        if not isinstance(payload, dict):
            raise ConfigurationError(f"JSON config {path} must contain an object at the top level")

        return JsonConfigLoader._normalize_values(payload, path)

    @staticmethod
    def _normalize_values(payload: Dict[str, Any], path: Path) -> Dict[str, str]:
        normalized: Dict[str, str] = {}

        for key, value in payload.items():
            if isinstance(value, dict):
                raise ConfigurationError(f"JSON config {path} must map setting names to scalar values (problematic key: {key})")
            if isinstance(value, list):
                # Account lists are stored as arrays; flatten to the env-var form
                normalized[str(key)] = ",".join(str(item) for item in value)
            elif value is None:
                normalized[str(key)] = ""
            else:
                normalized[str(key)] = str(value)

        return normalized
