"""Issue tracker integration backed by GitHub issues and milestones."""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from ghbridge.client import CancellationToken, GitHubClient, GitHubError
from ghbridge.models import Issue, IssueFilter, ProjectId


logger = logging.getLogger(__name__)

VALID_STATES = {"open", "closed"}


@dataclass
class IssueTrackerVersion:
    version: str
    is_closed: bool = False


class IssueTracker:
    """Treats a repository's milestones as release versions."""

    def __init__(self, client: GitHubClient, project: ProjectId):
        self.client = client
        self.project = project

    async def create_query_filter(
        self,
        milestone_title: Optional[str] = None,
        labels: Optional[str] = None,
        custom_query: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> IssueFilter:
        """Build the filter used to enumerate issues.

        A custom query wins over everything else. Otherwise the milestone
        title is looked up and its number used.

        Raises:
            GitHubError: If the milestone does not exist
            ValueError: If neither a custom query nor a milestone is given
        """
        if custom_query:
            return IssueFilter(custom_query=custom_query)

        if not milestone_title:
            raise ValueError("A milestone title or a custom filter query is required.")

        milestone = await self.client.find_milestone(milestone_title, self.project, cancel)
        if milestone is None:
            raise GitHubError(f"Could not find milestone {milestone_title} on GitHub.")

        return IssueFilter(milestone=str(milestone.number), labels=labels or None)

    async def ensure_version(
        self,
        version: IssueTrackerVersion,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        """Make a milestone exist for `version` in the matching open/closed state."""
        milestone = await self.client.find_milestone(version.version, self.project, cancel)
        if milestone is None:
            milestone = await self.client.create_milestone(version.version, self.project, cancel)
            if version.is_closed:
                await self.client.update_milestone(milestone.number, self.project, {"state": "closed"}, cancel)
        elif version.is_closed and milestone.state != "closed":
            await self.client.update_milestone(milestone.number, self.project, {"state": "closed"}, cancel)
        elif not version.is_closed and milestone.state == "closed":
            await self.client.update_milestone(milestone.number, self.project, {"state": "open"}, cancel)

    async def enumerate_issues(
        self,
        issue_filter: IssueFilter,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[Issue]:
        async for issue in self.client.list_issues(self.project, issue_filter, cancel):
            yield issue

    async def enumerate_versions(
        self,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[IssueTrackerVersion]:
        async for milestone in self.client.list_milestones(self.project, None, cancel):
            yield IssueTrackerVersion(milestone.title, milestone.state == "closed")

    async def transition_issues(
        self,
        from_status: Optional[str],
        to_status: str,
        comment: Optional[str],
        issue_filter: IssueFilter,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Move matching issues to `to_status` and return how many changed.

        Issues already in `to_status`, or not in `from_status` when given,
        are skipped. The comment, if any, is posted on each changed issue.

        Raises:
            ValueError: If a status other than open or closed is requested
        """
        if to_status.lower() not in VALID_STATES:
            raise ValueError(f'GitHub issue status cannot be set to "{to_status}", only open or closed.')
        if from_status and from_status.lower() not in VALID_STATES:
            raise ValueError(f'GitHub issue status cannot be "{from_status}", only open or closed.')

        target = to_status.lower()
        # Collect first so updates do not shift the pages being read
        issues = await self.client.list_issues(self.project, issue_filter, cancel).collect()

        changed = 0
        for issue in issues:
            if issue.status.lower() == target:
                continue
            if from_status and issue.status.lower() != from_status.lower():
                continue

            await self.client.update_issue(issue.number, self.project, {"state": target}, cancel)
            if comment:
                await self.client.create_comment(issue.number, self.project, comment, cancel)
            changed += 1

        logger.info("Transitioned %d issue(s) in %s to %s.", changed, self.project, target)
        return changed
