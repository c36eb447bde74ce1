"""Delay policy between failed NAT-PMP receive attempts."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExponentialBackoff:
    """Receive retry delays that grow geometrically up to a ceiling.

    The defaults follow the RFC 6886 section 3.1 retransmission schedule:
    250 ms, doubling after every unanswered attempt.
    """

    base_delay: float = 0.25
    multiplier: float = 2.0
    max_delay: float = 64.0

    def next_delay(self, attempt: int) -> float:
        """Delay in seconds after the failed ``attempt`` (0-based)."""
        return min(self.base_delay * self.multiplier ** max(0, attempt), self.max_delay)
