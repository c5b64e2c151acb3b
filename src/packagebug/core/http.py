"""
HTTP helpers.

This module centralizes the minimal HTTP client logic used by the GitHub client.

Design goals:
- Small surface area (a single GET).
- Deterministic defaults (timeout + User-Agent).
- Return the raw response: callers branch on status codes (e.g., 304 Not Modified)
  and read headers (ETag, X-RateLimit-*), so nothing is raised for non-2xx here.
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "packagebug/0.1.0 (+https://local)"


def http_get(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> httpx.Response:
    """GET `url` and return the response with its body fully read.

    Raises:
        httpx.TransportError: On connection failures and timeouts.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)

    with httpx.Client(timeout=timeout_seconds) as client:
        return client.get(url, params=params, headers=request_headers)
