"""
GitHub ingestion client.

This module is responsible only for:
- building the rate-limit and issue URLs for a package hosted on github.com,
- reading the current rate budget from response headers,
- issuing conditional (`If-None-Match`) issue requests and decoding the result.

It intentionally does not schedule anything or touch the token store; see
`packagebug.worker` for that.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx

from packagebug.config.settings import Settings
from packagebug.core.http import http_get
from packagebug.core.rate_limit import RateState
from packagebug.domain.models import Issue, WorkItem
from packagebug.errors import FetchError, RateCheckError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one conditional issue request."""

    status_code: int
    etag: str = ""
    not_modified: bool = False
    issues: list[Issue] = field(default_factory=list)


class GithubClient:
    """GitHub REST client for the rate-limit and repository-issues endpoints."""

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def supported_host(self) -> str:
        return self._settings.github.supported_host

    def supports(self, item: WorkItem) -> bool:
        return item.host == self.supported_host

    def _root(self) -> str:
        return self._settings.github.root_endpoint.rstrip("/")

    def _credentials(self) -> dict[str, str]:
        """OAuth app credentials as query parameters (omitted when unset)."""
        gh = self._settings.github
        params: dict[str, str] = {}
        if gh.client_id:
            params["client_id"] = gh.client_id
        if gh.client_secret:
            params["client_secret"] = gh.client_secret
        return params

    def rate_url(self) -> str:
        """URL of the rate-limit endpoint, credentials included."""
        query = urlencode(self._credentials())
        return f"{self._root()}/rate_limit?{query}" if query else f"{self._root()}/rate_limit"

    def issues_url(self, item: WorkItem) -> str:
        """URL of the bug issues of `item`; empty string for unsupported hosts."""
        if not self.supports(item):
            return ""
        gh = self._settings.github
        params = {**self._credentials(), "labels": gh.issue_labels, "state": gh.issue_state}
        return f"{self._root()}/repos/{item.owner}/{item.repo}/issues?{urlencode(params)}"

    def _headers(self, etag: str = "") -> dict[str, str]:
        gh = self._settings.github
        headers = {"User-Agent": gh.user_agent, "Accept": gh.accept}
        if etag:
            headers["If-None-Match"] = etag
        return headers

    def check_rate_limit(self) -> RateState:
        """Read the current rate budget.

        Raises:
            RateCheckError: On transport errors or missing/non-integer rate headers.
        """
        url = self.rate_url()
        try:
            resp = http_get(
                url,
                headers=self._headers(),
                timeout_seconds=self._settings.github.rate_limit_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise RateCheckError("rate limit request failed", cause=exc) from exc

        try:
            remaining = int(resp.headers["X-RateLimit-Remaining"])
            reset_at = int(resp.headers["X-RateLimit-Reset"])
        except KeyError as exc:
            raise RateCheckError(
                f"rate limit response (status={resp.status_code}) is missing header {exc}",
                cause=exc,
            ) from exc
        except ValueError as exc:
            raise RateCheckError("rate limit headers are not integers", cause=exc) from exc

        return RateState(remaining=remaining, reset_at=reset_at)

    @staticmethod
    def _decode_issues(payload: Any) -> list[Issue]:
        if not isinstance(payload, list):
            raise ValueError(f"expected a JSON list of issues, got {type(payload).__name__}")
        return [Issue.from_api(raw) for raw in payload if isinstance(raw, dict)]

    def fetch_issues(self, item: WorkItem, etag: str = "") -> FetchResult:
        """Conditionally fetch the bug issues of `item`.

        A 304 yields `not_modified=True` and no issues; a 200 yields the decoded issues
        and the response's `ETag` (empty if the server sent none).

        Raises:
            FetchError: On transport errors, unexpected statuses or undecodable bodies.
        """
        url = self.issues_url(item)
        if not url:
            raise FetchError(f"host {item.host!r} is not supported")

        try:
            resp = http_get(
                url,
                headers=self._headers(etag),
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise FetchError(f"fetch {item.path} failed", cause=exc) from exc

        logger.info("fetch %s %s", item.path, resp.status_code)

        if resp.status_code == 304:
            return FetchResult(status_code=304, etag=etag, not_modified=True)
        if resp.status_code != 200:
            raise FetchError(
                f"fetch {item.path} returned status={resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            issues = self._decode_issues(resp.json())
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"fetch {item.path} returned an undecodable body", status_code=200, cause=exc) from exc

        return FetchResult(status_code=200, etag=resp.headers.get("ETag", ""), issues=issues)
