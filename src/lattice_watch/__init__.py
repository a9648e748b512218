"""Watch Nano accounts on a node's websocket confirmation feed."""

from .backoff import BackoffConfig, BackoffPolicy
from .classifier import classify_confirmation
from .config import DEFAULT_WS_URL, ConfigurationError, MonitorSettings, load_monitor_settings
from .connection_state import ConnectionState
from .events import Channel, MonitorEvents, Signal
from .exceptions import (
    MessageDecodeError,
    MessageFormatError,
    MonitorConnectionError,
    MonitorError,
    ReconnectExhaustedError,
)
from .messages import ConfirmationBlock, PaymentEvent, RawConfirmation, ReceivedEvent, ReconnectingEvent
from .monitor import ConfirmationMonitor, create_monitor
from .subscription_registry import SubscriptionRegistry
from .units import raw_to_nano

__all__ = [
    "BackoffConfig",
    "BackoffPolicy",
    "Channel",
    "ConfigurationError",
    "ConfirmationBlock",
    "ConfirmationMonitor",
    "ConnectionState",
    "DEFAULT_WS_URL",
    "MessageDecodeError",
    "MessageFormatError",
    "MonitorConnectionError",
    "MonitorError",
    "MonitorEvents",
    "MonitorSettings",
    "PaymentEvent",
    "RawConfirmation",
    "ReceivedEvent",
    "ReconnectExhaustedError",
    "ReconnectingEvent",
    "Signal",
    "SubscriptionRegistry",
    "classify_confirmation",
    "create_monitor",
    "load_monitor_settings",
    "raw_to_nano",
]
