"""Exception classes raised or reported by the confirmation monitor.

All monitor failures inherit from ``MonitorError`` so observers of the
``error`` channel can filter on a single base class.

Exception classes support two patterns:
1. No-argument raise: raise MessageDecodeError()
2. Contextual attributes: err = MessageDecodeError(frame="..."); raise err
"""

from typing import Any


class MonitorError(Exception):
    """Base exception for all monitor errors.

    Supports keyword arguments that are stored as attributes for debugging.
    """

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = self.__class__.__doc__ or "Monitor error occurred"
        super().__init__(message)
        for key, value in kwargs.items():
            setattr(self, key, value)


class MonitorConnectionError(MonitorError, ConnectionError):
    """Websocket connection failed."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Websocket connection failed"
        super().__init__(message, **kwargs)


class MessageDecodeError(MonitorError, ValueError):
    """Inbound frame is not valid JSON."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Failed to parse message"
        super().__init__(message, **kwargs)


class MessageFormatError(MonitorError, ValueError):
    """Confirmation payload is missing fields or carries malformed values."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Malformed confirmation message"
        super().__init__(message, **kwargs)


class ReconnectExhaustedError(MonitorError):
    """Maximum reconnect attempts reached."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Max reconnect attempts reached"
        super().__init__(message, **kwargs)


__all__ = [
    "MessageDecodeError",
    "MessageFormatError",
    "MonitorConnectionError",
    "MonitorError",
    "ReconnectExhaustedError",
]
