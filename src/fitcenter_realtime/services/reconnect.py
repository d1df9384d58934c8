"""Reconnection policy with exponential backoff.

The policy owns no channel. It only reads and updates the ReconnectState
objects that RealtimeService keeps per logical subscription name.
"""

from __future__ import annotations

from dataclasses import dataclass

from fitcenter_realtime.config import RealtimeSettings


@dataclass
class ReconnectState:
    """Retry bookkeeping for one logical subscription."""

    attempts: int = 0
    delay: float = 0.0
    exhausted: bool = False

    def reset(self) -> None:
        self.attempts = 0
        self.delay = 0.0
        self.exhausted = False


class ReconnectPolicy:
    """Bounded exponential backoff.

    The Nth retry waits ``min(base_delay * 2 ** (N - 1), max_delay)`` seconds.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ):
        """Initialize the policy.

        Args:
            max_attempts: Retries allowed before giving up
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound for any delay, in seconds
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def from_settings(cls, settings: RealtimeSettings) -> ReconnectPolicy:
        return cls(
            max_attempts=settings.max_reconnect_attempts,
            base_delay=settings.reconnect_base_delay_seconds,
            max_delay=settings.reconnect_max_delay_seconds,
        )

    def should_retry(self, state: ReconnectState) -> bool:
        """Check whether another retry may be scheduled."""
        return not state.exhausted and state.attempts < self.max_attempts

    def next_delay(self, state: ReconnectState) -> float:
        """Delay for the attempt number currently recorded in state."""
        attempt = max(1, state.attempts)
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def schedule(self, state: ReconnectState) -> float:
        """Record a new attempt and return how long to wait before it."""
        state.attempts += 1
        state.delay = self.next_delay(state)
        return state.delay

    def exhaust(self, state: ReconnectState) -> None:
        state.exhausted = True
