"""
Reconnect backoff for the order-book feed.

delay(attempt) = min(base_delay_ms * multiplier^(attempt-1), max_delay_ms)

Defaults: base 1000 ms, multiplier 2, cap 30000 ms, 10 attempts, no jitter,
giving 1000, 2000, 4000, 8000, 16000, 30000, 30000, ... ms. Jitter is
available for callers that need to spread reconnects; a seeded RNG keeps
it reproducible in tests.
"""

from __future__ import annotations

import random
from dataclasses import dataclass


class ExhaustedReconnectError(Exception):
    """Raised (as an event payload) when the reconnect budget is used up.

    Terminal for the feed: it stays FAILED until connect() is called again.
    """

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


@dataclass
class BackoffConfig:
    """Configuration for exponential reconnect backoff."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    multiplier: float = 2.0
    jitter_factor: float = 0.0  # 0.5 = ±50% jitter
    max_retries: int = 10

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms must be >= base_delay_ms, got {self.max_delay_ms}"
            )
        if self.multiplier < 1.0:
            raise ValueError(f"multiplier must be >= 1.0, got {self.multiplier}")
        if not 0.0 <= self.jitter_factor < 1.0:
            raise ValueError(f"jitter_factor must be in [0, 1), got {self.jitter_factor}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")


@dataclass
class BackoffState:
    """Mutable state for backoff tracking."""

    attempt: int = 0

    def reset(self) -> None:
        """Reset backoff state after a successful connection."""
        self.attempt = 0

    def record_error(self) -> None:
        """Record a failed or lost connection (one more attempt)."""
        self.attempt += 1

    def exhausted(self, config: BackoffConfig) -> bool:
        """Check if no attempts remain."""
        return self.attempt >= config.max_retries


def backoff_delay_for_attempt(
    config: BackoffConfig,
    attempt: int,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Compute the delay before reconnect attempt number `attempt` (1-based).

    Args:
        config: Backoff configuration.
        attempt: Attempt number; 0 or less means no delay.
        rng: Optional seeded Random instance for deterministic jitter.

    Returns:
        Delay in milliseconds.
    """
    if attempt <= 0:
        return 0

    delay = config.base_delay_ms * (config.multiplier ** (attempt - 1))

    if config.jitter_factor > 0:
        low = 1.0 - config.jitter_factor
        high = 1.0 + config.jitter_factor
        delay *= rng.uniform(low, high) if rng is not None else random.uniform(low, high)

    return int(min(delay, config.max_delay_ms))


def compute_backoff_delay(
    config: BackoffConfig,
    state: BackoffState,
    *,
    rng: random.Random | None = None,
) -> int:
    """Compute delay for the state's current attempt."""
    return backoff_delay_for_attempt(config, state.attempt, rng=rng)
