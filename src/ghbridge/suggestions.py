"""Value suggestions for organization, repository and milestone fields."""

from typing import Optional

from ghbridge.client import CancellationToken, GitHubClient
from ghbridge.credentials import GitHubAccount
from ghbridge.models import ProjectId


async def suggest_namespaces(
    client: GitHubClient,
    account: GitHubAccount,
    cancel: Optional[CancellationToken] = None,
) -> list[str]:
    """Organizations of the user, followed by the user's own name."""
    namespaces = await client.list_organizations(cancel).collect()
    if account.username:
        namespaces.append(account.username)
    return namespaces


async def suggest_repository_names(
    client: GitHubClient,
    account: GitHubAccount,
    namespace: Optional[str] = None,
    cancel: Optional[CancellationToken] = None,
) -> list[str]:
    """Repositories of `namespace`.

    An empty namespace, or one equal to the user name, lists the user's
    own repositories; anything else is treated as an organization.
    """
    username = account.username or ""
    if not namespace or namespace.lower() == username.lower():
        if not username:
            return []
        return await client.list_user_repositories(username, cancel).collect()
    return await client.list_org_repositories(namespace, cancel).collect()


async def suggest_milestones(
    client: GitHubClient,
    project: ProjectId,
    cancel: Optional[CancellationToken] = None,
) -> list[str]:
    return [m.title async for m in client.list_milestones(project, "all", cancel)]
