"""Credential and repository-resource resolution.

Repository connections come in several shapes. Each shape is its own
dataclass tagged with a `kind`, and each answers the same question through
resolve_clone_url() instead of callers inspecting types.
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from ghbridge.client import GitHubClient, GitHubError
from ghbridge.config import TOKEN_ENV_VAR, GhBridgeConfig
from ghbridge.models import ProjectId


@dataclass
class GitHubAccount:
    """Resolved identity used to talk to the API."""

    api_url: Optional[str] = None
    username: Optional[str] = None
    token: Optional[str] = None


@dataclass
class GenericGitResource:
    """Any git remote addressed directly by URL."""

    repository_url: str
    kind: str = "generic"

    async def resolve_clone_url(
        self,
        open_client: Callable[[], GitHubClient],
        account: Optional[GitHubAccount] = None,
    ) -> str:
        return self.repository_url


@dataclass
class LegacyGitResource(GenericGitResource):
    """Older connection shape that stored the remote URL and nothing else."""

    kind: str = "legacy"


@dataclass
class GitHubRepositoryResource:
    """A repository hosted on GitHub, addressed by organization and name.

    legacy_api_url is honored for connections saved before the API URL
    moved to the credentials.
    """

    repository: str
    organization: Optional[str] = None
    legacy_api_url: Optional[str] = None
    kind: str = "github"

    def project_id(self, account: Optional[GitHubAccount] = None) -> ProjectId:
        owner = resolve_owner(self, account)
        return ProjectId(owner=owner, repository=self.repository)

    async def resolve_clone_url(
        self,
        open_client: Callable[[], GitHubClient],
        account: Optional[GitHubAccount] = None,
    ) -> str:
        async with open_client() as client:
            info = await client.get_repository(self.project_id(account))
        return info.repository_url


RepositoryResource = Union[GenericGitResource, LegacyGitResource, GitHubRepositoryResource]

RESOURCE_KINDS: dict[str, type] = {
    "generic": GenericGitResource,
    "legacy": LegacyGitResource,
    "github": GitHubRepositoryResource,
}


def resource_from_dict(data: dict[str, Any]) -> RepositoryResource:
    """Build a resource variant from its saved form.

    Raises:
        ValueError: Unknown kind or missing fields
    """
    kind = data.get("kind", "github")
    resource_type = RESOURCE_KINDS.get(kind)
    if resource_type is None:
        raise ValueError(f"Unknown repository resource kind: {kind}")

    values = {k: v for k, v in data.items() if k != "kind"}
    try:
        return resource_type(**values)
    except TypeError as e:
        raise ValueError(f"Invalid {kind} repository resource: {e}") from e


def get_resource(config: GhBridgeConfig, name: str) -> RepositoryResource:
    """Look up a named repository connection in the configuration."""
    data = config.resources.get(name)
    if data is None:
        raise GitHubError(f"Repository connection '{name}' is not defined.")
    return resource_from_dict(data)


def resolve_credentials(
    config: GhBridgeConfig,
    resource: Optional[RepositoryResource] = None,
    username: Optional[str] = None,
    token: Optional[str] = None,
    api_url: Optional[str] = None,
) -> GitHubAccount:
    """Combine explicit values, the resource and saved configuration.

    Explicit arguments win. The token falls back to the GITHUB_TOKEN
    environment variable and is never read from the config file.
    """
    legacy_url = getattr(resource, "legacy_api_url", None) if resource is not None else None
    return GitHubAccount(
        api_url=api_url or legacy_url or config.resolve_api_url(),
        username=username or config.username,
        token=token or os.environ.get(TOKEN_ENV_VAR),
    )


def resolve_owner(
    resource: Optional[GitHubRepositoryResource],
    account: Optional[GitHubAccount],
    organization: Optional[str] = None,
) -> str:
    """Owner of the repository: organization if known, else the user name."""
    owner = (
        organization
        or (resource.organization if resource is not None else None)
        or (account.username if account is not None else None)
    )
    if not owner:
        raise GitHubError(
            "Could not determine repository owner. Specify an organization or a user name."
        )
    return owner


def create_client(account: GitHubAccount, config: Optional[GhBridgeConfig] = None) -> GitHubClient:
    """Open a GitHubClient for `account` using the saved client settings."""
    config = config or GhBridgeConfig()
    settings = config.to_settings(token=account.token, username=account.username, api_url=account.api_url)
    return GitHubClient(
        settings,
        cache=config.build_cache(),
        chunk_size=config.upload_chunk_size,
        max_pages=config.max_pages,
    )
