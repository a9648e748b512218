"""
Connection state definitions for the confirmation monitor.

Exactly one state is held per monitor instance; transitions drive the
keepalive, subscribe-on-open and reconnect side effects.
"""

from enum import Enum


class ConnectionState(Enum):
    """
    Lifecycle states of the confirmation stream connection.

    IDLE is the state before the first start(). STOPPED is terminal until
    start() is called again, either after stop() or after reconnect
    attempts are exhausted.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"
