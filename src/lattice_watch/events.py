"""Typed observer lists for monitor notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, List, TypeVar

from .messages import PaymentEvent, ReceivedEvent, ReconnectingEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")
C = TypeVar("C", bound=Callable)

Unsubscribe = Callable[[], None]


class _ObserverList(Generic[C]):
    def __init__(self, name: str):
        self.name = name
        self._observers: List[C] = []

    def subscribe(self, callback: C) -> Unsubscribe:
        """Register ``callback``. Returns a function that removes it again."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._observers)

    def _deliver(self, *args) -> None:
        # Copy so observers may (un)subscribe while being notified
        for callback in list(self._observers):
            try:
                callback(*args)
            except Exception:  # policy_guard: allow-silent-handler
                logger.exception("Observer %r for %s notification failed", callback, self.name)


class Signal(_ObserverList[Callable[[], None]]):
    """Notification without payload."""

    def emit(self) -> None:
        self._deliver()


class Channel(_ObserverList[Callable[[T], None]], Generic[T]):
    """Notification carrying one payload of type ``T``."""

    def emit(self, payload: T) -> None:
        self._deliver(payload)


@dataclass
class MonitorEvents:
    connected: Signal = field(default_factory=lambda: Signal("connected"))
    disconnected: Signal = field(default_factory=lambda: Signal("disconnected"))
    reconnecting: Channel[ReconnectingEvent] = field(default_factory=lambda: Channel("reconnecting"))
    error: Channel[Exception] = field(default_factory=lambda: Channel("error"))
    payment: Channel[PaymentEvent] = field(default_factory=lambda: Channel("payment"))
    received: Channel[ReceivedEvent] = field(default_factory=lambda: Channel("received"))


__all__ = ["Channel", "MonitorEvents", "Signal", "Unsubscribe"]
