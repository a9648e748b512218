"""
Centralized logging configuration.

Provides a single setup_logging function with:
- Console output (technical format, or message-only user-friendly mode)
- File output to logs/{service_name}.log when a service name is given
- Fresh log file on each start unless LOG_APPEND=1
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional

_config_lock = threading.Lock()

_TECHNICAL_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _build_console_handler(user_friendly: bool, level: int) -> logging.Handler:
    if user_friendly:
        formatter = logging.Formatter("%(message)s")
    else:
        formatter = logging.Formatter(_TECHNICAL_FORMAT, _DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.WARNING if user_friendly else level)
    return console_handler


def _build_file_handler(service_name: str, logs_dir: Path) -> logging.Handler:
    logs_dir.mkdir(parents=True, exist_ok=True)
    file_mode = "a" if os.getenv("LOG_APPEND") == "1" else "w"
    file_handler = logging.FileHandler(logs_dir / f"{service_name}.log", mode=file_mode)
    file_handler.setFormatter(logging.Formatter(_TECHNICAL_FORMAT, _DATE_FORMAT))
    file_handler.setLevel(logging.INFO)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def setup_logging(
    service_name: Optional[str] = None,
    user_friendly: bool = False,
    *,
    level: int = logging.INFO,
    logs_dir: Optional[Path] = None,
) -> None:
    """Configure root logging for the application"""

    with _config_lock:
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)

        root_logger.addHandler(_build_console_handler(user_friendly, level))
        if service_name:
            root_logger.addHandler(_build_file_handler(service_name, logs_dir or Path.cwd() / "logs"))

        root_logger.setLevel(level)
        _suppress_noisy_third_parties()


__all__ = ["setup_logging"]
