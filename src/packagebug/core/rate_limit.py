"""
Remote rate-limit state.

The GitHub API reports how many calls the credentials have left and the unix time at
which the allowance resets. The dispatcher reads this before every fetch because other
consumers of the same credentials can drain it at any time.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

UNKNOWN = -1


@dataclass(frozen=True)
class RateState:
    """Snapshot of the remote rate budget."""

    remaining: int
    reset_at: int

    @classmethod
    def unknown(cls) -> "RateState":
        """State reported when the budget could not be read."""
        return cls(remaining=UNKNOWN, reset_at=UNKNOWN)

    @property
    def is_unknown(self) -> bool:
        return self.remaining < 0

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def seconds_until_reset(self, now: float | None = None) -> float:
        """Seconds to wait for the reset, never negative."""
        current = time.time() if now is None else float(now)
        return max(0.0, float(self.reset_at) - current)
