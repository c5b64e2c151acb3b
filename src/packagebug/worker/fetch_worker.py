"""
One unit of work: refresh the bug issues of a single package.

Protocol per item:
1. skip packages on hosts other than github.com (successful no-op)
2. read the last ETag from the token store (missing = unconditional request)
3. conditional GET of the issue list
4. 304 -> nothing to do
5. 200 -> hand issues to the optional sink, then compare-and-set the new ETag

Failures raise `FetchError` / `PersistenceError` and are never retried here; the
dispatcher logs them and the next delivery of the message starts over from the stored
token, which is safe because re-fetching is idempotent.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Protocol

from packagebug.domain.models import Issue, WorkItem
from packagebug.ingestion.github_client import FetchResult, GithubClient

logger = logging.getLogger(__name__)

IssueSink = Callable[[WorkItem, list[Issue]], None]


class FetchOutcome(str, Enum):
    SKIPPED = "skipped"
    NOT_MODIFIED = "not_modified"
    UPDATED = "updated"
    STALE = "stale"
    FAILED = "failed"


class _TokenStoreLike(Protocol):
    def get_token(self, key: str) -> str: ...

    def save_token(self, key: str, token: str, *, expected: str = "") -> bool: ...


class FetchWorker:
    def __init__(
        self,
        client: GithubClient,
        store: _TokenStoreLike,
        *,
        store_issues: IssueSink | None = None,
    ):
        self._client = client
        self._store = store
        self._store_issues = store_issues

    def run(self, item: WorkItem) -> FetchOutcome:
        """Process `item` once.

        Raises:
            FetchError: The remote request failed or returned an unusable response.
            PersistenceError: The token could not be read or written.
        """
        if not self._client.supports(item):
            logger.info("skip %s: host not supported", item.path)
            return FetchOutcome.SKIPPED

        etag = self._store.get_token(item.path)
        result: FetchResult = self._client.fetch_issues(item, etag)

        if result.not_modified:
            return FetchOutcome.NOT_MODIFIED

        logger.info("%s: %d bug issue(s)", item.path, len(result.issues))
        if self._store_issues is not None:
            self._store_issues(item, result.issues)

        if not result.etag or result.etag == etag:
            return FetchOutcome.UPDATED

        if not self._store.save_token(item.path, result.etag, expected=etag):
            return FetchOutcome.STALE
        return FetchOutcome.UPDATED
