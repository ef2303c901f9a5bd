"""Connectors for the external order-book feed and metrics endpoints."""

from tradesim.connectors.backoff import (
    BackoffConfig,
    BackoffState,
    ExhaustedReconnectError,
    backoff_delay_for_attempt,
    compute_backoff_delay,
)

__all__ = [
    "BackoffConfig",
    "BackoffState",
    "ExhaustedReconnectError",
    "backoff_delay_for_attempt",
    "compute_backoff_delay",
]
