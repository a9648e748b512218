"""
Confirmation stream monitor.

Keeps one websocket connection to a node's confirmation feed open, subscribes
the watched accounts on every (re)connect, and turns confirmations into
``payment`` and ``received`` notifications. Connection failures are retried
with exponential backoff until the attempt limit is reached.

All work for one monitor runs on a single asyncio event loop: frames are
classified strictly in arrival order and at most one connection attempt is in
flight at any time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, FrozenSet, Iterable, Optional, Set

import orjson
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from .backoff import BackoffPolicy
from .classifier import AmountConverter, classify_confirmation
from .config import MonitorSettings
from .connection_lifecycle import ConnectionFactory, WebSocketConnectionLifecycle
from .connection_state import ConnectionState
from .events import MonitorEvents, Unsubscribe
from .exceptions import (
    MessageDecodeError,
    MessageFormatError,
    MonitorConnectionError,
    MonitorError,
    ReconnectExhaustedError,
)
from .messages import (
    CONFIRMATION_TOPIC,
    PaymentEvent,
    RawConfirmation,
    ReceivedEvent,
    ReconnectingEvent,
    build_subscribe_request,
)
from .subscription_registry import SubscriptionRegistry
from .units import raw_to_nano

DEFAULT_SERVICE_NAME = "lattice_watch"


class ConfirmationMonitor:
    """Watches accounts on the confirmation feed and publishes payment events."""

    def __init__(
        self,
        settings: Optional[MonitorSettings] = None,
        *,
        converter: Optional[AmountConverter] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        service_name: str = DEFAULT_SERVICE_NAME,
    ):
        self.settings = settings or MonitorSettings()
        self.registry = SubscriptionRegistry(self.settings.accounts)
        self.backoff = BackoffPolicy(self.settings.backoff)
        self.events = MonitorEvents()
        self.lifecycle = WebSocketConnectionLifecycle(
            service_name,
            self.settings.ws_url,
            self.settings.connection_timeout_seconds,
            connection_factory,
        )
        self._convert: AmountConverter = converter or raw_to_nano
        self._state = ConnectionState.IDLE
        self._running = False
        self._starting = False
        self._reconnect_attempts = 0
        self._reader_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._background_tasks: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(f"{__name__}.{service_name}")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def accounts(self) -> FrozenSet[str]:
        return self.registry.snapshot()

    def add_account(self, account: str) -> None:
        """Watch ``account``; subscribes it immediately when the stream is open."""
        added = self.registry.add(account)
        if added and self._state is ConnectionState.OPEN:
            self._track(asyncio.get_running_loop().create_task(self._subscribe([account])))

    def remove_account(self, account: str) -> None:
        """Stop reporting ``account``. The feed keeps sending its confirmations."""
        self.registry.remove(account)

    async def start(self) -> None:
        """
        Connect to the feed. Does nothing while already running.

        Raises:
            MonitorConnectionError: If the first connection attempt fails. A
                reconnect is still scheduled; call stop() to abandon it.
        """
        if self._running or self._starting:
            return
        self._starting = True
        try:
            await self.wait_closed()
        finally:
            starting, self._starting = self._starting, False
        if not starting:
            # stop() was called while the previous run was closing
            return
        self._running = True
        self._reconnect_attempts = 0
        self.logger.info("Starting confirmation monitor for %d account(s)", len(self.registry))
        await self._connect()

    def stop(self) -> None:
        """
        Stop the monitor and disable automatic reconnection.

        Safe to call from observers and more than once. The connection is
        closed in the background; await wait_closed() to know when it is gone.
        """
        self._starting = False
        if self._state is ConnectionState.CLOSING:
            return
        if self._running:
            self.logger.info("Stopping confirmation monitor")
        self._running = False
        self._cancel_keepalive()
        self._cancel_reconnect()
        if self.lifecycle.get_connection() is not None:
            self._set_state(ConnectionState.CLOSING)
            self._track(asyncio.get_running_loop().create_task(self._close_connection()))
        else:
            self._set_state(ConnectionState.STOPPED)

    async def wait_closed(self) -> None:
        """Wait until no background work of this monitor is left."""
        current = asyncio.current_task()
        while True:
            pending = [task for task in self._tasks() if task is not current and not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def on_payment(self, callback: Callable[[PaymentEvent], None]) -> Unsubscribe:
        return self.events.payment.subscribe(callback)

    def on_received(self, callback: Callable[[ReceivedEvent], None]) -> Unsubscribe:
        return self.events.received.subscribe(callback)

    def on_connected(self, callback: Callable[[], None]) -> Unsubscribe:
        return self.events.connected.subscribe(callback)

    def on_disconnected(self, callback: Callable[[], None]) -> Unsubscribe:
        return self.events.disconnected.subscribe(callback)

    def on_reconnecting(self, callback: Callable[[ReconnectingEvent], None]) -> Unsubscribe:
        return self.events.reconnecting.subscribe(callback)

    def on_error(self, callback: Callable[[Exception], None]) -> Unsubscribe:
        return self.events.error.subscribe(callback)

    async def _connect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        try:
            connection = await self.lifecycle.establish_connection()
        except MonitorConnectionError as exc:
            self.logger.warning("Connection to %s failed: %s", self.settings.ws_url, exc)
            self.events.error.emit(exc)
            await self._on_connection_closed()
            raise

        if not self._running:
            # stop() arrived during the handshake
            await self.lifecycle.cleanup_connection()
            self._set_state(ConnectionState.STOPPED)
            return

        self._reconnect_attempts = 0
        self._set_state(ConnectionState.OPEN)
        self._reader_task = asyncio.create_task(self._read_frames(connection))
        self._keepalive_task = asyncio.create_task(self._keepalive())
        self.events.connected.emit()

        accounts = self.registry.snapshot()
        if accounts and self._state is ConnectionState.OPEN:
            await self._subscribe(accounts)

    async def _subscribe(self, accounts: Iterable[str]) -> None:
        request = build_subscribe_request(accounts)
        count = len(request["options"]["accounts"])
        if await self.lifecycle.send_json(request):
            self.logger.info("Subscribed to confirmations for %d account(s)", count)
        else:
            self.logger.warning("Subscribe request for %d account(s) was not sent", count)

    async def _read_frames(self, connection) -> None:
        try:
            while True:
                frame = await connection.recv()
                self._handle_frame(frame)
        except ConnectionClosedOK:
            self.logger.info("Confirmation stream closed")
        except ConnectionClosedError as exc:
            self.logger.warning("Confirmation stream closed unexpectedly: %s", exc)
            error = MonitorConnectionError(f"Connection lost: {exc}", url=self.settings.ws_url)
            error.__cause__ = exc
            self.events.error.emit(error)
        except OSError as exc:
            self.logger.warning("Transport error on confirmation stream: %s", exc)
            error = MonitorConnectionError(f"Transport error: {exc}", url=self.settings.ws_url)
            error.__cause__ = exc
            self.events.error.emit(error)
        await self._on_connection_closed()

    def _handle_frame(self, frame) -> None:
        if not self._running:
            return
        try:
            payload = orjson.loads(frame)
        except orjson.JSONDecodeError as exc:
            self.logger.warning("Dropping undecodable frame: %s", exc)
            error = MessageDecodeError(f"Failed to parse message: {exc}", frame=frame)
            error.__cause__ = exc
            self.events.error.emit(error)
            return

        if not isinstance(payload, dict) or payload.get("topic") != CONFIRMATION_TOPIC:
            self.logger.debug("Ignoring non-confirmation frame")
            return

        try:
            confirmation = RawConfirmation.from_payload(payload)
            events = classify_confirmation(confirmation, self.registry, self._convert)
        except ValueError as exc:
            self.logger.warning("Dropping malformed confirmation: %s", exc)
            if isinstance(exc, MessageFormatError):
                error = exc
            else:
                error = MessageFormatError(f"Malformed confirmation message: {exc}")
                error.__cause__ = exc
            self.events.error.emit(error)
            return
        except Exception as exc:
            self.logger.exception("Failed to classify confirmation")
            error = MonitorError(f"Failed to classify confirmation: {exc!r}")
            error.__cause__ = exc
            self.events.error.emit(error)
            return

        for event in events:
            if isinstance(event, PaymentEvent):
                self.logger.info("Payment %s of %s to %s", event.hash, event.amount_display, event.to_account)
                self.events.payment.emit(event)
            else:
                self.logger.info("Receive %s of %s by %s confirmed", event.hash, event.amount_display, event.account)
                self.events.received.emit(event)

    async def _keepalive(self) -> None:
        while True:
            await asyncio.sleep(self.settings.ping_interval_seconds)
            if self._state is ConnectionState.OPEN:
                await self.lifecycle.ping()

    async def _on_connection_closed(self) -> None:
        self._cancel_keepalive()
        await self.lifecycle.cleanup_connection()
        self.events.disconnected.emit()
        if self._running:
            self._schedule_reconnect()
        else:
            self._set_state(ConnectionState.STOPPED)

    def _schedule_reconnect(self) -> None:
        if not self.backoff.can_retry(self._reconnect_attempts):
            self._running = False
            self._set_state(ConnectionState.STOPPED)
            self.logger.error("Giving up after %d reconnect attempts", self._reconnect_attempts)
            self.events.error.emit(ReconnectExhaustedError(attempts=self._reconnect_attempts))
            return

        self._reconnect_attempts += 1
        delay = self.backoff.delay(self._reconnect_attempts)
        self._set_state(ConnectionState.RECONNECTING)
        self.logger.info("Reconnecting in %.1fs (attempt %d)", delay, self._reconnect_attempts)
        self.events.reconnecting.emit(ReconnectingEvent(attempt=self._reconnect_attempts, delay=delay))
        if self._running:
            self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self._running:
            return
        try:
            await self._connect()
        except MonitorConnectionError:  # policy_guard: allow-silent-handler
            self.logger.debug("Reconnect attempt %d failed", self._reconnect_attempts)

    async def _close_connection(self) -> None:
        await self.lifecycle.cleanup_connection()
        if self._reader_task is None or self._reader_task.done():
            self._set_state(ConnectionState.STOPPED)

    def _cancel_keepalive(self) -> None:
        task = self._keepalive_task
        self._keepalive_task = None
        if task is not None and not task.done():
            task.cancel()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _track(self, task: asyncio.Future) -> None:
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _tasks(self) -> list:
        tasks = list(self._background_tasks)
        for task in (self._reader_task, self._keepalive_task, self._reconnect_task):
            if task is not None:
                tasks.append(task)
        return tasks

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is not self._state:
            self.logger.debug("State %s -> %s", self._state.value, new_state.value)
            self._state = new_state


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:  # policy_guard: allow-silent-handler
        return None


def create_monitor(
    ws_url: Optional[str] = None,
    accounts: Optional[Iterable[str]] = None,
    *,
    settings: Optional[MonitorSettings] = None,
    converter: Optional[AmountConverter] = None,
    connection_factory: Optional[ConnectionFactory] = None,
) -> ConfirmationMonitor:
    """Create a monitor for ``accounts`` on ``ws_url`` (both optional)."""
    base = settings or MonitorSettings()
    return ConfirmationMonitor(
        base.with_overrides(ws_url=ws_url, accounts=accounts),
        converter=converter,
        connection_factory=connection_factory,
    )


__all__ = ["ConfirmationMonitor", "create_monitor"]
