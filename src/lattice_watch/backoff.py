"""Exponential reconnect backoff for the confirmation stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS = 1.0
DEFAULT_RECONNECT_MULTIPLIER = 2.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10


@dataclass(frozen=True)
class BackoffConfig:
    """Configuration for exponential backoff behavior"""

    initial_delay: float = DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS
    multiplier: float = DEFAULT_RECONNECT_MULTIPLIER
    max_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS


class BackoffPolicy:
    """Calculates reconnect delays. No jitter and no upper bound."""

    def __init__(self, config: BackoffConfig | None = None):
        self.config = config or BackoffConfig()

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    def delay(self, attempt: int) -> float:
        """
        Calculate the delay before reconnect attempt ``attempt``.

        Args:
            attempt: 1-based attempt number

        Returns:
            Delay in seconds

        Raises:
            ValueError: If attempt is lower than 1
        """
        if attempt < 1:
            raise ValueError(f"Backoff attempt must be >= 1 (got {attempt})")
        delay = self.config.initial_delay * (self.config.multiplier ** (attempt - 1))
        logger.debug("Calculated reconnect backoff: attempt=%s, delay=%.2fs", attempt, delay)
        return delay

    def can_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.config.max_attempts


__all__ = [
    "BackoffConfig",
    "BackoffPolicy",
    "DEFAULT_MAX_RECONNECT_ATTEMPTS",
    "DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS",
]
