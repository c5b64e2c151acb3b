from __future__ import annotations

import threading
from dataclasses import dataclass, field


@dataclass
class DispatchStats:
    """Dispatcher counters (best-effort, for logs and tests).

    Worker threads report their outcome through `record_outcome`, so every mutation
    goes through the lock.
    """

    polls: int = 0
    empty_polls: int = 0
    queue_errors: int = 0
    malformed: int = 0
    rate_errors: int = 0
    backoffs: int = 0
    drains: int = 0
    dispatched: int = 0
    max_in_flight: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def observe_in_flight(self, size: int) -> None:
        with self._lock:
            self.max_in_flight = max(self.max_in_flight, int(size))

    def record_outcome(self, outcome: str) -> None:
        with self._lock:
            self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            out = {
                "polls": int(self.polls),
                "empty_polls": int(self.empty_polls),
                "queue_errors": int(self.queue_errors),
                "malformed": int(self.malformed),
                "rate_errors": int(self.rate_errors),
                "backoffs": int(self.backoffs),
                "drains": int(self.drains),
                "dispatched": int(self.dispatched),
                "max_in_flight": int(self.max_in_flight),
            }
            for name, count in self.outcomes.items():
                out[f"outcome_{name}"] = int(count)
            return out
