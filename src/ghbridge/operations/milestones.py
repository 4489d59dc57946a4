"""Ensure-style operation for GitHub milestones."""

import logging
from dataclasses import dataclass
from typing import Optional

from ghbridge.client import CancellationToken, GitHubClient
from ghbridge.models import Milestone, ProjectId


logger = logging.getLogger(__name__)


@dataclass
class MilestoneConfiguration:
    """Desired (or collected) state of a milestone."""

    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    state: Optional[str] = None
    exists: bool = True

    @property
    def due_on(self) -> Optional[str]:
        """Due date as a timestamp; a bare date means 08:00 UTC that day."""
        if not self.due_date:
            return None
        if "T" in self.due_date:
            return self.due_date
        return f"{self.due_date}T08:00:00Z"


class EnsureMilestoneOperation:
    """Make a milestone exist with the given properties."""

    def __init__(self, client: GitHubClient, project: ProjectId, template: MilestoneConfiguration):
        self.client = client
        self.project = project
        self.template = template

    async def collect(self, cancel: Optional[CancellationToken] = None) -> MilestoneConfiguration:
        """Read the current state of the milestone."""
        milestone = await self.client.find_milestone(self.template.title, self.project, cancel)
        if milestone is None:
            return MilestoneConfiguration(title=self.template.title, exists=False)

        return MilestoneConfiguration(
            title=milestone.title,
            description=milestone.description or "",
            due_date=milestone.due_on,
            state=milestone.state,
            exists=True,
        )

    async def configure(self, cancel: Optional[CancellationToken] = None) -> Milestone:
        """Create the milestone if needed and update fields that differ.

        Only fields set on the template are compared; unset ones are left as
        they are on the server.
        """
        milestone = await self.client.create_milestone(self.template.title, self.project, cancel)

        update: dict[str, str] = {}
        due_on = self.template.due_on
        if due_on is not None and milestone.due_on != due_on:
            update["due_on"] = milestone.due_on = due_on
        if self.template.description is not None and milestone.description != self.template.description:
            update["description"] = milestone.description = self.template.description
        if self.template.state is not None and milestone.state != self.template.state:
            update["state"] = milestone.state = self.template.state

        if update:
            logger.info("Updating milestone %s in %s: %s", milestone.title, self.project, ", ".join(update))
            await self.client.update_milestone(milestone.number, self.project, update, cancel)

        return milestone
