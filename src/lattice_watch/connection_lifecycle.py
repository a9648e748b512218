"""Websocket transport for the node confirmation feed."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import orjson
import websockets
from websockets import WebSocketException

from .exceptions import MonitorConnectionError

ConnectionFactory = Callable[[], Awaitable[Any]]

DEFAULT_CLOSE_TIMEOUT_SECONDS = 10
DEFAULT_MAX_FRAME_BYTES = 1024 * 1024
_CLOSE_WAIT_SECONDS = 5.0
_LOGGED_FRAME_CHARS = 100


class WebSocketConnectionLifecycle:
    """Holds at most one feed connection: opens it, writes to it, closes it."""

    def __init__(
        self,
        service_name: str,
        feed_url: str,
        connection_timeout: float,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        self.service_name = service_name
        self.feed_url = feed_url
        self.connection_timeout = connection_timeout
        self.connection_factory = connection_factory
        self.connection: Optional[Any] = None
        self.logger = logging.getLogger(f"{__name__}.{service_name}")

    async def establish_connection(self) -> Any:
        """
        Open a new feed connection and make it the current one.

        Raises:
            MonitorConnectionError: If the handshake fails or times out, or the
                connection is already closed when it is handed over
        """
        self.logger.info("Connecting to confirmation feed %s", self.feed_url)
        try:
            connection = await _open_feed(self.connection_factory, self.feed_url, self.connection_timeout)
        except asyncio.TimeoutError as exc:
            self.logger.warning("Handshake with %s timed out after %.1fs", self.feed_url, self.connection_timeout)
            raise MonitorConnectionError(
                f"Connection timeout after {self.connection_timeout}s", url=self.feed_url
            ) from exc
        except WebSocketException as exc:
            self.logger.warning("Handshake with %s rejected: %s", self.feed_url, exc)
            raise MonitorConnectionError(f"WebSocket connection failed: {exc}", url=self.feed_url) from exc
        except OSError as exc:
            self.logger.warning("Cannot reach %s: %s", self.feed_url, exc)
            raise MonitorConnectionError(f"Transport error: {exc}", url=self.feed_url) from exc

        _ensure_usable(connection, self.feed_url)
        self.connection = connection
        self.logger.info("Connected to confirmation feed")
        return connection

    async def cleanup_connection(self) -> None:
        """Detach the current connection and close it if still open. Never raises."""
        connection, self.connection = self.connection, None
        if connection is None:
            return
        if connection.close_code is not None:
            self.logger.debug("Feed connection already closed (code %s)", connection.close_code)
            return
        try:
            await asyncio.wait_for(connection.close(), timeout=_CLOSE_WAIT_SECONDS)
        except (asyncio.TimeoutError, WebSocketException, OSError) as exc:  # policy_guard: allow-silent-handler
            self.logger.warning("Feed connection did not close cleanly: %s", exc)
        else:
            self.logger.info("Feed connection closed")

    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.close_code is None

    def get_connection(self) -> Optional[Any]:
        return self.connection

    async def send_json(self, payload: Dict[str, Any]) -> bool:
        """Encode ``payload`` with orjson and write it. Returns False when not sent."""
        if not self.is_connected():
            self.logger.error("Not sending %s request: feed is not connected", payload.get("action", "unknown"))
            return False

        text = orjson.dumps(payload).decode("utf-8")
        try:
            await self.connection.send(text)
        except WebSocketException as exc:
            self.logger.warning("Request %s not sent: %s", text[:_LOGGED_FRAME_CHARS], exc)
            return False
        except OSError:
            self.logger.exception("Transport error while sending %s", text[:_LOGGED_FRAME_CHARS])
            return False
        self.logger.debug("Sent %s", text[:_LOGGED_FRAME_CHARS])
        return True

    async def ping(self) -> bool:
        """Send a keepalive ping without waiting for the pong."""
        if not self.is_connected():
            return False
        try:
            await self.connection.ping()
        except (WebSocketException, OSError):  # policy_guard: allow-silent-handler
            self.logger.debug("Keepalive ping failed; the reader reports the close")
            return False
        self.logger.debug("Keepalive ping sent")
        return True


async def _open_feed(connection_factory: Optional[ConnectionFactory], feed_url: str, timeout: float):
    if connection_factory is None:

        def connection_factory():
            return websockets.connect(
                feed_url,
                ping_interval=None,
                ping_timeout=None,
                close_timeout=DEFAULT_CLOSE_TIMEOUT_SECONDS,
                max_size=DEFAULT_MAX_FRAME_BYTES,
            )

    return await asyncio.wait_for(connection_factory(), timeout=timeout)


def _ensure_usable(connection, feed_url: str) -> None:
    if connection is None:
        raise MonitorConnectionError("Connection factory returned no connection", url=feed_url)
    if connection.close_code is not None:
        raise MonitorConnectionError(
            f"Connection closed during handshake (code {connection.close_code})", url=feed_url
        )


__all__ = ["ConnectionFactory", "WebSocketConnectionLifecycle"]
