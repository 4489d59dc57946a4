"""Release automation operations built on the GitHub client."""

from .issues import IssueTracker, IssueTrackerVersion
from .milestones import EnsureMilestoneOperation, MilestoneConfiguration
from .releases import (
    EnsureReleaseOperation,
    OperationProgress,
    UploadReleaseAssetsOperation,
    guess_content_type,
    match_files,
)

__all__ = [
    "EnsureMilestoneOperation",
    "EnsureReleaseOperation",
    "IssueTracker",
    "IssueTrackerVersion",
    "MilestoneConfiguration",
    "OperationProgress",
    "UploadReleaseAssetsOperation",
    "guess_content_type",
    "match_files",
]
