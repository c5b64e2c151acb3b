"""
Rate budget gate.

`RateBudget.check()` performs one synchronous read of the GitHub rate-limit endpoint per
call. It never retries and never caches: retry policy and backoff belong to the dispatcher,
and the budget is shared with every other consumer of the same credentials.
"""

from __future__ import annotations

import logging

from packagebug.core.rate_limit import RateState
from packagebug.ingestion.github_client import GithubClient

logger = logging.getLogger(__name__)


class RateBudget:
    def __init__(self, client: GithubClient):
        self._client = client

    def check(self) -> RateState:
        """Return a fresh `RateState`.

        Raises:
            RateCheckError: If the budget could not be read; its `state` is unknown (-1, -1).
        """
        state = self._client.check_rate_limit()
        logger.debug("rate budget remaining=%s reset_at=%s", state.remaining, state.reset_at)
        return state
