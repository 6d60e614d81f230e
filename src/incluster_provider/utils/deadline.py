"""Per-invocation deadline."""

from __future__ import annotations

import time

from .errors import TransientError


class Deadline:
    """Wall-clock budget shared by every API call of one reconcile invocation."""

    def __init__(self, timeout: float | None, clock=time.monotonic):
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> float | None:
        """Seconds left, or None for an unbounded invocation."""
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self, stage: str) -> float | None:
        """Raise TransientError once expired, else return the remaining time."""
        if self.expired():
            raise TransientError(f"{stage}: reconcile deadline exceeded")
        return self.remaining()
