"""Data models for ghbridge."""

from .schemas import (
    Issue,
    IssueFilter,
    Milestone,
    ProjectBoard,
    ProjectColumn,
    ProjectId,
    PullRequest,
    RefType,
    Release,
    ReleaseAsset,
    RemoteBranch,
    RepositoryInfo,
    parse_timestamp,
)

__all__ = [
    "Issue",
    "IssueFilter",
    "Milestone",
    "ProjectBoard",
    "ProjectColumn",
    "ProjectId",
    "PullRequest",
    "RefType",
    "Release",
    "ReleaseAsset",
    "RemoteBranch",
    "RepositoryInfo",
    "parse_timestamp",
]
