"""Domain records returned by the GitHub client."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote


OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a GitHub ISO timestamp such as 2024-01-15T10:30:00Z."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


class RefType(str, Enum):
    """Kinds of git refs that can be listed."""

    ALL = "all"
    BRANCH = "branch"
    TAG = "tag"

    @property
    def prefix(self) -> str:
        if self is RefType.BRANCH:
            return "refs/heads"
        if self is RefType.TAG:
            return "refs/tags"
        return "refs"


@dataclass(frozen=True)
class ProjectId:
    """Owner (user or organization) and repository name."""

    owner: str
    repository: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.repository}"

    @classmethod
    def parse(cls, value: str) -> "ProjectId":
        """Parse "owner/repo" into a ProjectId."""
        owner, sep, repository = value.strip().strip("/").partition("/")
        if not sep or not owner or not repository or "/" in repository:
            raise ValueError(f"Expected OWNER/REPO, got: {value}")
        return cls(owner=owner, repository=repository)


@dataclass
class RepositoryInfo:
    repository_url: str
    browse_url: Optional[str] = None
    default_branch: Optional[str] = None


@dataclass
class RemoteBranch:
    commit: str
    name: str
    is_protected: bool = False


@dataclass
class PullRequest:
    id: str
    url: str
    title: str
    closed: bool
    source_branch: str
    target_branch: str


@dataclass
class Issue:
    """An issue as seen by the issue tracker integration."""

    id: str
    number: int
    title: str
    description: str
    status: str
    type: Optional[str]
    submitter: Optional[str]
    submitted_date: Optional[datetime]
    is_closed: bool
    url: Optional[str]
    api_url: Optional[str] = None

    @classmethod
    def from_json(
        cls,
        data: dict[str, Any],
        status_override: Optional[str] = None,
        closed_override: Optional[bool] = None,
    ) -> "Issue":
        state = data.get("state") or "open"
        labels = [
            label.get("name") if isinstance(label, dict) else str(label)
            for label in data.get("labels") or []
        ]
        user = data.get("user") or {}
        return cls(
            id=str(data["number"]),
            number=int(data["number"]),
            title=data.get("title") or "",
            description=data.get("body") or "",
            status=status_override or state,
            type=labels[0] if labels else None,
            submitter=user.get("login"),
            submitted_date=parse_timestamp(data.get("created_at")),
            is_closed=closed_override if closed_override is not None else state == "closed",
            url=data.get("html_url"),
            api_url=data.get("url"),
        )


@dataclass
class Milestone:
    number: int
    title: str
    description: Optional[str] = None
    state: Optional[str] = None
    due_on: Optional[str] = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Milestone":
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            description=data.get("description"),
            state=data.get("state"),
            due_on=data.get("due_on"),
        )


@dataclass
class ReleaseAsset:
    name: str


@dataclass
class Release:
    """A release; unset fields are left out of create/update payloads."""

    tag: str
    id: Optional[int] = None
    target: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    draft: Optional[bool] = None
    prerelease: Optional[bool] = None
    upload_url: Optional[str] = None
    assets: list[ReleaseAsset] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Release":
        return cls(
            id=data.get("id"),
            tag=data.get("tag_name") or "",
            target=data.get("target_commitish"),
            title=data.get("name"),
            description=data.get("body"),
            draft=data.get("draft"),
            prerelease=data.get("prerelease"),
            upload_url=data.get("upload_url"),
            assets=[ReleaseAsset(name=a["name"]) for a in data.get("assets") or [] if a.get("name")],
        )

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "tag_name": self.tag,
            "target_commitish": self.target,
            "name": self.title,
            "body": self.description,
            "draft": self.draft,
            "prerelease": self.prerelease,
        }
        return {k: v for k, v in payload.items() if v is not None}

    def has_asset(self, name: str) -> bool:
        return any(asset.name == name for asset in self.assets)


@dataclass
class ProjectBoard:
    id: int
    name: str
    columns_url: Optional[str] = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "ProjectBoard":
        return cls(id=int(data["id"]), name=data.get("name") or "", columns_url=data.get("columns_url"))


@dataclass
class ProjectColumn:
    name: str
    issue_urls: list[str] = field(default_factory=list)


class IssueFilter:
    """Query string used to enumerate a repository's issues.

    A custom query is used verbatim; otherwise the milestone must be a
    milestone number, "*" or "none".
    """

    def __init__(
        self,
        milestone: Optional[str] = None,
        labels: Optional[str] = None,
        custom_query: Optional[str] = None,
    ):
        if (
            milestone is not None
            and not milestone.isdigit()
            and milestone != "*"
            and milestone.lower() != "none"
        ):
            raise ValueError("milestone must be an integer, or a string of '*' or 'none'.")

        self.milestone = milestone
        self.labels = labels
        self.custom_query = custom_query

    def to_query_string(self) -> str:
        if self.custom_query:
            query = self.custom_query
            return query if query.startswith("?") else f"?{query}"

        query = "?state=all"
        if self.milestone:
            query += "&milestone=" + quote(self.milestone, safe="")
        if self.labels:
            query += "&labels=" + quote(self.labels, safe="")
        query += "&per_page=100"
        return query
