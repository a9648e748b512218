"""Watchlist of accounts whose confirmations the monitor reports."""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Iterator, Set

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Set of watched account addresses, independent of connection state.

    Addresses are compared as exact strings. Removing an account only stops
    local reporting; the upstream feed has no per-account unsubscribe.
    """

    def __init__(self, accounts: Iterable[str] = ()):
        self._accounts: Set[str] = set(accounts)

    def add(self, account: str) -> bool:
        """Add an account. Returns True when it was not already watched."""
        if account in self._accounts:
            return False
        self._accounts.add(account)
        logger.debug("Watching account %s", account)
        return True

    def remove(self, account: str) -> bool:
        """Remove an account. Returns True when it was watched."""
        if account not in self._accounts:
            return False
        self._accounts.discard(account)
        logger.debug("Stopped watching account %s", account)
        return True

    def snapshot(self) -> FrozenSet[str]:
        return frozenset(self._accounts)

    def __contains__(self, account: object) -> bool:
        return account in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())


__all__ = ["SubscriptionRegistry"]
