"""
Domain models.

These types are the contract between the queue, the GitHub client and the worker:
- `WorkItem`: one package/repository to check, decoded from a queue message
- `Issue` / `IssueCreator`: the subset of a GitHub issue payload we keep

Queue payloads are validated with Pydantic (reject bad messages early); decoded API
records are small frozen dataclasses, like other ingestion records.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packagebug.errors import MalformedMessageError

MESSAGE_FIELDS = ("id", "host", "owner", "repo")


class WorkItem(BaseModel):
    """A package identified by `(host, owner, repo)`."""

    model_config = ConfigDict(frozen=True)

    id: str
    host: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.host, self.owner, self.repo)

    @property
    def path(self) -> str:
        """Import path of the package, also the cache-token key (`host/owner/repo`)."""
        return f"{self.host}/{self.owner}/{self.repo}"


def parse_work_item(body: str) -> WorkItem:
    """Decode a `id,host,owner,repo` message body.

    Raises:
        MalformedMessageError: On a wrong field count or an empty host/owner/repo.
    """
    fields = body.split(",")
    if len(fields) != len(MESSAGE_FIELDS):
        raise MalformedMessageError(
            f"expected {len(MESSAGE_FIELDS)} comma-separated fields, got {len(fields)}", body=body
        )
    try:
        return WorkItem(**dict(zip(MESSAGE_FIELDS, fields)))
    except ValidationError as exc:
        raise MalformedMessageError("invalid message fields", body=body, cause=exc) from exc


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class IssueCreator:
    """The GitHub user who opened an issue."""

    username: str | None
    github_id: str | None
    avatar_url: str | None = None
    gravatar_id: str | None = None
    api_profile_url: str | None = None
    profile_url: str | None = None
    api_followers_url: str | None = None
    api_following_url: str | None = None
    api_gists_url: str | None = None
    api_starred_url: str | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "IssueCreator":
        return cls(
            username=_str_or_none(raw.get("login")),
            github_id=_str_or_none(raw.get("id")),
            avatar_url=_str_or_none(raw.get("avatar_url")),
            gravatar_id=_str_or_none(raw.get("gravatar_id")),
            api_profile_url=_str_or_none(raw.get("url")),
            profile_url=_str_or_none(raw.get("html_url")),
            api_followers_url=_str_or_none(raw.get("followers_url")),
            api_following_url=_str_or_none(raw.get("following_url")),
            api_gists_url=_str_or_none(raw.get("gists_url")),
            api_starred_url=_str_or_none(raw.get("starred_url")),
        )


@dataclass(frozen=True)
class Issue:
    """One issue of a package repository (labelled `bug`)."""

    github_id: str
    number: int
    title: str
    html_url: str | None
    api_url: str | None = None
    labels_url: str | None = None
    comments_url: str | None = None
    events_url: str | None = None
    creator: IssueCreator | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Issue":
        """Build an issue from one element of the GitHub issues list.

        Raises:
            KeyError / TypeError / ValueError: If required fields are missing or malformed.
        """
        user = raw.get("user")
        return cls(
            github_id=str(raw["id"]),
            number=int(raw["number"]),
            title=str(raw.get("title") or ""),
            html_url=_str_or_none(raw.get("html_url")),
            api_url=_str_or_none(raw.get("url")),
            labels_url=_str_or_none(raw.get("labels_url")),
            comments_url=_str_or_none(raw.get("comments_url")),
            events_url=_str_or_none(raw.get("events_url")),
            creator=IssueCreator.from_api(user) if isinstance(user, dict) else None,
        )
