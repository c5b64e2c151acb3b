"""Exception hierarchy for packagebug.

Every failure the dispatch loop can meet is recoverable on a later iteration, so these
exceptions exist to be caught and logged by the dispatcher rather than to stop it.
"""

from __future__ import annotations

from packagebug.core.rate_limit import RateState


class PackageBugError(Exception):
    """Base exception for all packagebug errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class MalformedMessageError(PackageBugError, ValueError):
    """Raised when a queue message body cannot be parsed into a work item.

    This is a data-quality problem: the message is discarded and the loop moves on.
    """

    def __init__(self, message: str, body: str | None = None, cause: Exception | None = None):
        super().__init__(message, cause)
        self.body = body


class QueueError(PackageBugError):
    """Raised when receiving from or deleting on the work queue fails."""


class RateCheckError(PackageBugError):
    """Raised when the remote rate budget cannot be read.

    `state` is always the unknown state (remaining=-1, reset_at=-1), which is distinct
    from a legitimately exhausted budget.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, cause)
        self.state: RateState = RateState.unknown()


class FetchError(PackageBugError):
    """Raised when the issue request fails or returns an undecodable response."""

    def __init__(self, message: str, status_code: int | None = None, cause: Exception | None = None):
        super().__init__(message, cause)
        self.status_code = status_code


class PersistenceError(PackageBugError):
    """Raised when the cache-token store cannot be read or written."""
