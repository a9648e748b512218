"""Classification of confirmation frames into payment events."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Container, List, Union

from .exceptions import MessageFormatError
from .messages import CONFIRMATION_TOPIC, PaymentEvent, RawConfirmation, ReceivedEvent

logger = logging.getLogger(__name__)

SEND_SUBTYPE = "send"
RECEIVE_SUBTYPE = "receive"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

MonitorEvent = Union[PaymentEvent, ReceivedEvent]
AmountConverter = Callable[[str], str]


def parse_timestamp(value: str) -> datetime:
    """Parse a millisecond epoch string into an aware UTC datetime."""
    try:
        millis = int(value)
    except (TypeError, ValueError) as exc:
        raise MessageFormatError(f"Invalid confirmation timestamp {value!r}", field="time") from exc
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError as exc:
        raise MessageFormatError(f"Confirmation timestamp out of range: {value!r}", field="time") from exc


def classify_confirmation(
    msg: RawConfirmation,
    watchlist: Container[str],
    convert: AmountConverter,
) -> List[MonitorEvent]:
    """
    Map one confirmation to the events it raises for ``watchlist``.

    A send block is reported as a payment when its destination
    (``link_as_account``) is watched. A receive block is reported when the
    block's own account is watched. Both checks run on every message and
    neither result is deduplicated against the other.

    Raises:
        MessageFormatError: If a matching confirmation has a non-string
            hash or amount, or a timestamp that is not an integer string
    """
    if msg.topic != CONFIRMATION_TOPIC:
        return []

    block = msg.block
    events: List[MonitorEvent] = []

    if block.subtype == SEND_SUBTYPE and block.link_as_account in watchlist:
        events.append(
            PaymentEvent(
                hash=msg.field_text("hash"),
                from_account=msg.account,
                to_account=block.link_as_account,
                amount=msg.field_text("amount"),
                amount_display=convert(msg.field_text("amount")),
                timestamp=parse_timestamp(msg.field_text("time")),
            )
        )

    if block.subtype == RECEIVE_SUBTYPE and msg.account in watchlist:
        events.append(
            ReceivedEvent(
                hash=msg.field_text("hash"),
                account=msg.account,
                amount=msg.field_text("amount"),
                amount_display=convert(msg.field_text("amount")),
                timestamp=parse_timestamp(msg.field_text("time")),
            )
        )

    if events:
        logger.debug("Classified confirmation %s into %d event(s)", msg.hash, len(events))
    return events


__all__ = [
    "AmountConverter",
    "MonitorEvent",
    "classify_confirmation",
    "parse_timestamp",
]
