"""Tests for credential resolution, repository resources and suggestions."""

import httpx
import pytest
import respx

from ghbridge.client import GitHubClient, GitHubError
from ghbridge.config import GhBridgeConfig
from ghbridge.credentials import (
    GenericGitResource,
    GitHubAccount,
    GitHubRepositoryResource,
    LegacyGitResource,
    create_client,
    get_resource,
    resolve_credentials,
    resolve_owner,
    resource_from_dict,
)
from ghbridge.models import ProjectId
from ghbridge.suggestions import suggest_milestones, suggest_namespaces, suggest_repository_names


API = "https://api.github.com"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GHBRIDGE_API_URL", raising=False)


class TestResources:
    """Tests for the tagged repository resource variants."""

    def test_from_dict(self):
        """Test each kind builds its own variant."""
        assert isinstance(resource_from_dict({"kind": "generic", "repository_url": "u"}), GenericGitResource)
        assert isinstance(resource_from_dict({"kind": "legacy", "repository_url": "u"}), LegacyGitResource)
        resource = resource_from_dict({"repository": "demo", "organization": "octo"})
        assert isinstance(resource, GitHubRepositoryResource)
        assert resource.kind == "github"

    def test_unknown_kind(self):
        """Test unknown kinds are rejected."""
        with pytest.raises(ValueError, match="Unknown repository resource kind"):
            resource_from_dict({"kind": "svn", "repository_url": "u"})

    def test_missing_fields(self):
        """Test incomplete resources are rejected."""
        with pytest.raises(ValueError, match="Invalid generic"):
            resource_from_dict({"kind": "generic"})

    def test_get_resource(self):
        """Test named connections from the configuration."""
        config = GhBridgeConfig(resources={"main": {"kind": "generic", "repository_url": "git@x:y.git"}})
        assert get_resource(config, "main").repository_url == "git@x:y.git"
        with pytest.raises(GitHubError, match="not defined"):
            get_resource(config, "other")

    @pytest.mark.asyncio
    async def test_generic_clone_url(self):
        """Test URL-only resources never open a client."""
        def open_client():
            raise AssertionError("client should not be opened")

        assert await GenericGitResource("https://git.example.com/a.git").resolve_clone_url(open_client) == (
            "https://git.example.com/a.git"
        )
        assert await LegacyGitResource("ssh://old/a.git").resolve_clone_url(open_client) == "ssh://old/a.git"

    def test_legacy_is_generic_with_own_kind(self):
        """Test legacy connections share the URL-only behaviour under their own tag."""
        resource = LegacyGitResource("ssh://old/a.git")
        assert isinstance(resource, GenericGitResource)
        assert resource.kind == "legacy"
        assert GenericGitResource("u").kind == "generic"

    @pytest.mark.asyncio
    @respx.mock
    async def test_github_clone_url(self):
        """Test GitHub resources ask the API for the clone URL."""
        respx.get(f"{API}/repos/octo/demo").mock(
            return_value=httpx.Response(200, json={"clone_url": "https://github.com/octo/demo.git"})
        )

        resource = GitHubRepositoryResource(repository="demo", organization="octo")
        assert await resource.resolve_clone_url(GitHubClient) == "https://github.com/octo/demo.git"

    def test_project_id_uses_username(self):
        """Test the user name is the owner without an organization."""
        resource = GitHubRepositoryResource(repository="demo")
        assert resource.project_id(GitHubAccount(username="alice")) == ProjectId("alice", "demo")


class TestResolveCredentials:
    """Tests for combining explicit, resource and saved values."""

    def test_explicit_wins(self, monkeypatch):
        """Test explicit arguments override everything."""
        monkeypatch.setenv("GITHUB_TOKEN", "env")
        config = GhBridgeConfig(username="saved", api_url="https://saved")
        account = resolve_credentials(config, username="me", token="tok", api_url="https://arg")
        assert account == GitHubAccount(api_url="https://arg", username="me", token="tok")

    def test_fallbacks(self, monkeypatch):
        """Test environment token and saved values."""
        monkeypatch.setenv("GITHUB_TOKEN", "env")
        account = resolve_credentials(GhBridgeConfig(username="saved", api_url="https://saved"))
        assert account == GitHubAccount(api_url="https://saved", username="saved", token="env")

    def test_legacy_api_url(self):
        """Test a resource's legacy URL beats the saved one."""
        resource = GitHubRepositoryResource(repository="demo", legacy_api_url="https://old.example.com/api")
        account = resolve_credentials(GhBridgeConfig(api_url="https://saved"), resource)
        assert account.api_url == "https://old.example.com/api"

    def test_resolve_owner(self):
        """Test organization, then user name, then error."""
        resource = GitHubRepositoryResource(repository="demo", organization="acme")
        account = GitHubAccount(username="alice")
        assert resolve_owner(resource, account) == "acme"
        assert resolve_owner(resource, account, organization="other") == "other"
        assert resolve_owner(None, account) == "alice"
        with pytest.raises(GitHubError, match="Could not determine repository owner"):
            resolve_owner(None, GitHubAccount())

    @pytest.mark.asyncio
    async def test_create_client(self):
        """Test saved client settings are applied."""
        config = GhBridgeConfig(cache_enabled=True, upload_chunk_size=1024, max_pages=3)
        account = GitHubAccount(api_url="https://ghe.example.com/api/v3", username="u", token="t")

        async with create_client(account, config) as client:
            assert client.api_url == "https://ghe.example.com/api/v3"
            assert client.executor.cache is not None
            assert client.executor.identity.startswith("user:u:")
            assert client.uploader.chunk_size == 1024
            assert client.max_pages == 3


class TestSuggestions:
    """Tests for value suggestion providers."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_namespaces(self):
        """Test organizations come first, then the user name."""
        respx.get(f"{API}/user/orgs?per_page=100").mock(
            return_value=httpx.Response(200, json=[{"login": "acme"}, {"login": "tools"}])
        )

        async with GitHubClient() as client:
            names = await suggest_namespaces(client, GitHubAccount(username="alice"))
        assert names == ["acme", "tools", "alice"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_user_repositories(self):
        """Test the user's own namespace lists user repositories."""
        respx.get(f"{API}/users/alice/repos?per_page=100").mock(
            return_value=httpx.Response(200, json=[{"name": "dotfiles"}])
        )

        async with GitHubClient() as client:
            account = GitHubAccount(username="alice")
            assert await suggest_repository_names(client, account, "Alice") == ["dotfiles"]
            assert await suggest_repository_names(client, account) == ["dotfiles"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_org_repositories(self):
        """Test any other namespace is an organization."""
        respx.get(f"{API}/orgs/acme/repos?per_page=100").mock(
            return_value=httpx.Response(200, json=[{"name": "api"}, {"name": "web"}])
        )

        async with GitHubClient() as client:
            assert await suggest_repository_names(client, GitHubAccount(username="alice"), "acme") == ["api", "web"]

    @pytest.mark.asyncio
    async def test_no_user_no_namespace(self):
        """Test nothing is suggested without a namespace or user name."""
        async with GitHubClient() as client:
            assert await suggest_repository_names(client, GitHubAccount()) == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_milestones(self):
        """Test milestone titles."""
        respx.get(f"{API}/repos/octo/demo/milestones?state=all&sort=due_on&direction=desc&per_page=100").mock(
            return_value=httpx.Response(200, json=[{"number": 2, "title": "2.0"}, {"number": 1, "title": "1.0"}])
        )

        async with GitHubClient() as client:
            assert await suggest_milestones(client, ProjectId("octo", "demo")) == ["2.0", "1.0"]
