"""
Settings for the confirmation stream monitor.

Values come from explicit arguments, then environment variables, then the
``.env``/JSON defaults files, then the constants below.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Tuple

from ..backoff import (
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS,
    BackoffConfig,
)
from .errors import ConfigurationError
from .runtime import env_float, env_int, env_list, env_str

DEFAULT_WS_URL = "wss://uk1.public.xnopay.com/ws"
DEFAULT_PING_INTERVAL_SECONDS = 30.0
DEFAULT_CONNECTION_TIMEOUT_SECONDS = 10.0

WS_URL_ENV = "LATTICE_WATCH_WS_URL"
ACCOUNTS_ENV = "LATTICE_WATCH_ACCOUNTS"
PING_INTERVAL_ENV = "LATTICE_WATCH_PING_INTERVAL_SECONDS"
CONNECTION_TIMEOUT_ENV = "LATTICE_WATCH_CONNECTION_TIMEOUT_SECONDS"
RECONNECT_INITIAL_DELAY_ENV = "LATTICE_WATCH_RECONNECT_INITIAL_DELAY_SECONDS"
MAX_RECONNECT_ATTEMPTS_ENV = "LATTICE_WATCH_MAX_RECONNECT_ATTEMPTS"


@dataclass(frozen=True)
class MonitorSettings:
    """
    Configuration for one ``ConfirmationMonitor``.

    Attributes:
        ws_url: Websocket endpoint of the node confirmation feed
        accounts: Accounts watched from the first connection on
        ping_interval_seconds: Interval between keepalive pings while open
        connection_timeout_seconds: Maximum time to wait for the handshake
        reconnect_initial_delay_seconds: Delay before the first reconnect
        max_reconnect_attempts: Reconnect attempts before giving up
    """

    ws_url: str = DEFAULT_WS_URL
    accounts: Tuple[str, ...] = field(default_factory=tuple)
    ping_interval_seconds: float = DEFAULT_PING_INTERVAL_SECONDS
    connection_timeout_seconds: float = DEFAULT_CONNECTION_TIMEOUT_SECONDS
    reconnect_initial_delay_seconds: float = DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS

    def __post_init__(self) -> None:
        if not self.ws_url or not self.ws_url.startswith(("ws://", "wss://")):
            raise ConfigurationError.invalid_endpoint(self.ws_url)
        for name in ("ping_interval_seconds", "connection_timeout_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigurationError.out_of_range(name, getattr(self, name), "positive")
        if self.reconnect_initial_delay_seconds < 0:
            raise ConfigurationError.out_of_range(
                "reconnect_initial_delay_seconds", self.reconnect_initial_delay_seconds, "non-negative"
            )
        if self.max_reconnect_attempts < 0:
            raise ConfigurationError.out_of_range("max_reconnect_attempts", self.max_reconnect_attempts, "non-negative")
        object.__setattr__(self, "accounts", tuple(self.accounts))

    @property
    def backoff(self) -> BackoffConfig:
        return BackoffConfig(
            initial_delay=self.reconnect_initial_delay_seconds,
            max_attempts=self.max_reconnect_attempts,
        )

    def with_overrides(self, *, ws_url: Optional[str] = None, accounts: Optional[Iterable[str]] = None) -> "MonitorSettings":
        """Return a copy with the given endpoint and/or accounts replaced."""
        changes = {}
        if ws_url:
            changes["ws_url"] = ws_url
        if accounts is not None:
            changes["accounts"] = tuple(accounts)
        return replace(self, **changes)


def load_monitor_settings() -> MonitorSettings:
    """
    Build settings from the environment and the defaults files.

    Raises:
        ConfigurationError: If a configured value cannot be parsed or is invalid
    """
    return MonitorSettings(
        ws_url=env_str(WS_URL_ENV, DEFAULT_WS_URL),
        accounts=env_list(ACCOUNTS_ENV, or_value=()),
        ping_interval_seconds=env_float(PING_INTERVAL_ENV, DEFAULT_PING_INTERVAL_SECONDS),
        connection_timeout_seconds=env_float(CONNECTION_TIMEOUT_ENV, DEFAULT_CONNECTION_TIMEOUT_SECONDS),
        reconnect_initial_delay_seconds=env_float(RECONNECT_INITIAL_DELAY_ENV, DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS),
        max_reconnect_attempts=env_int(MAX_RECONNECT_ATTEMPTS_ENV, DEFAULT_MAX_RECONNECT_ATTEMPTS),
    )


__all__ = [
    "DEFAULT_WS_URL",
    "MonitorSettings",
    "load_monitor_settings",
]
