"""Wire messages of the node confirmation feed and the events derived from them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping

from .exceptions import MessageFormatError

CONFIRMATION_TOPIC = "confirmation"
SUBSCRIBE_ACTION = "subscribe"

_BLOCK_FIELDS = (
    "type",
    "account",
    "previous",
    "representative",
    "balance",
    "link",
    "link_as_account",
    "signature",
    "work",
    "subtype",
)


def _require_mapping(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    if not isinstance(value, Mapping):
        raise MessageFormatError(f"Confirmation field {key!r} must be an object", field=key)
    return value


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise MessageFormatError(f"Confirmation field {key!r} must be a string", field=key)
    return value


@dataclass(frozen=True)
class ConfirmationBlock:
    type: str
    account: str
    previous: str
    representative: str
    balance: str
    link: str
    link_as_account: str
    signature: str
    work: str
    subtype: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ConfirmationBlock":
        values = {name: payload.get(name, "") for name in _BLOCK_FIELDS}
        for name, value in values.items():
            if not isinstance(value, str):
                raise MessageFormatError(f"Block field {name!r} must be a string", field=name)
        return cls(**values)


@dataclass(frozen=True)
class RawConfirmation:
    """
    One decoded ``confirmation`` frame. Transient, never persisted.

    ``time``, ``amount`` and ``hash`` are kept as received; they are only
    checked when the frame concerns a watched account (see ``field_text``).
    """

    topic: str
    time: Any
    account: str
    amount: Any
    hash: Any
    confirmation_type: str
    block: ConfirmationBlock

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawConfirmation":
        """
        Build a confirmation from a decoded JSON frame.

        Raises:
            MessageFormatError: If the fields needed for matching against the
                watchlist are missing or mistyped
        """
        message = _require_mapping(payload, "message")
        return cls(
            topic=_require_str(payload, "topic"),
            time=payload.get("time"),
            account=_require_str(message, "account"),
            amount=message.get("amount"),
            hash=message.get("hash"),
            confirmation_type=str(message.get("confirmation_type", "")),
            block=ConfirmationBlock.from_payload(_require_mapping(message, "block")),
        )

    def field_text(self, name: str) -> str:
        """Return ``time``, ``amount`` or ``hash`` as a string, raising MessageFormatError otherwise."""
        value = getattr(self, name)
        if not isinstance(value, str):
            raise MessageFormatError(f"Confirmation field {name!r} must be a string", field=name)
        return value


@dataclass(frozen=True)
class PaymentEvent:
    """A send block whose destination is a watched account was confirmed."""

    hash: str
    from_account: str
    to_account: str
    amount: str
    amount_display: str
    timestamp: datetime


@dataclass(frozen=True)
class ReceivedEvent:
    """A watched account's own receive block was confirmed."""

    hash: str
    account: str
    amount: str
    amount_display: str
    timestamp: datetime


@dataclass(frozen=True)
class ReconnectingEvent:
    attempt: int
    delay: float


def build_subscribe_request(accounts: Iterable[str]) -> Dict[str, Any]:
    """Build the confirmation subscribe request for ``accounts``."""
    return {
        "action": SUBSCRIBE_ACTION,
        "topic": CONFIRMATION_TOPIC,
        "options": {"accounts": sorted(accounts)},
    }


__all__ = [
    "CONFIRMATION_TOPIC",
    "ConfirmationBlock",
    "PaymentEvent",
    "RawConfirmation",
    "ReceivedEvent",
    "ReconnectingEvent",
    "build_subscribe_request",
]
