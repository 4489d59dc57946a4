"""GitHub REST API client.

This module provides the domain calls used by release automation:
- Organizations, repositories, branches and refs
- Pull requests and commit statuses
- Issues, comments and milestones
- Classic project boards
- Releases and release assets
"""

import logging
from typing import Any, BinaryIO, Callable, Optional
from urllib.parse import quote

import httpx

from ghbridge.client.cache import ResponseCache
from ghbridge.client.cancellation import CancellationToken
from ghbridge.client.errors import GitHubError
from ghbridge.client.executor import ClientSettings, RequestExecutor, create_http_client
from ghbridge.client.pagination import Paginator
from ghbridge.client.upload import DEFAULT_CHUNK_SIZE, StreamUploader, expand_upload_url
from ghbridge.models import (
    Issue,
    IssueFilter,
    Milestone,
    ProjectBoard,
    ProjectColumn,
    ProjectId,
    PullRequest,
    RefType,
    Release,
    RemoteBranch,
    RepositoryInfo,
)
from ghbridge.models.schemas import OBJECT_ID_PATTERN


logger = logging.getLogger(__name__)


def esc(part: Optional[str]) -> str:
    """Escape a URL path segment."""
    return quote(part or "")


def select_strings(document: Any, name: str) -> list[str]:
    """Pick the string property `name` from every object in a JSON array."""
    if not isinstance(document, list):
        return []
    return [
        item[name]
        for item in document
        if isinstance(item, dict) and isinstance(item.get(name), str)
    ]


def select_branches(document: Any) -> list[RemoteBranch]:
    branches = []
    for item in document or []:
        name = item.get("name")
        commit = item.get("commit")
        if not isinstance(name, str) or not isinstance(commit, dict):
            continue

        sha = commit.get("sha")
        if not isinstance(sha, str) or not OBJECT_ID_PATTERN.match(sha):
            continue

        branches.append(RemoteBranch(commit=sha.lower(), name=name, is_protected=item.get("protected") is True))
    return branches


def _repo_id(pr: dict, side: str) -> Optional[int]:
    repo = (pr.get(side) or {}).get("repo")
    if isinstance(repo, dict) and isinstance(repo.get("id"), int):
        return repo["id"]
    return None


def select_pull_requests(document: Any) -> list[PullRequest]:
    pull_requests = []
    for pr in document or []:
        source_repo = _repo_id(pr, "head")
        target_repo = _repo_id(pr, "base")
        if source_repo is None or target_repo is None:
            continue

        # Requests from forks are not supported yet
        if source_repo != target_repo:
            continue

        pull_requests.append(
            PullRequest(
                id=str(pr["id"]),
                url=pr["url"],
                title=pr.get("title") or "",
                closed=pr.get("state") == "closed",
                source_branch=pr["head"]["ref"],
                target_branch=pr["base"]["ref"],
            )
        )
    return pull_requests


def strip_ref_prefix(ref: str, prefix: str) -> str:
    """Remove the requested ref prefix and any leading slash."""
    if ref.startswith(prefix):
        ref = ref[len(prefix):]
    if ref.startswith("/"):
        ref = ref[1:]
    return ref


class GitHubClient:
    """Async client for the GitHub REST API.

    All calls route through a RequestExecutor; listings are returned as lazy
    Paginators that fetch one page at a time.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        cache: Optional[ResponseCache] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_pages: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize GitHub client.

        Args:
            settings: API URL, identity and preview media types
            cache: Optional conditional-GET cache shared with other clients
            chunk_size: Bytes per chunk for streamed uploads
            max_pages: Optional cap on pages followed per listing
            transport: Optional httpx transport (used by tests)
        """
        self.settings = settings or ClientSettings()
        self.api_url = self.settings.api_url
        self.max_pages = max_pages
        self._http = create_http_client(self.settings, transport=transport)
        self.executor = RequestExecutor(self._http, identity=self.settings.identity, cache=cache)
        self.uploader = StreamUploader(self._http, chunk_size=chunk_size)

    @property
    def username(self) -> Optional[str]:
        return self.settings.username

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def _repo_url(self, project: ProjectId, path: str = "") -> str:
        return f"{self.api_url}/repos/{esc(project.owner)}/{esc(project.repository)}{path}"

    def paginate(
        self,
        url: str,
        projector: Callable[[Any], Any],
        cancel: Optional[CancellationToken] = None,
    ) -> Paginator:
        return Paginator(self.executor.fetch_page, url, projector, cancel=cancel, max_pages=self.max_pages)

    # Organizations and repositories

    def list_organizations(self, cancel: Optional[CancellationToken] = None) -> Paginator[str]:
        """Logins of the organizations the authenticated user belongs to."""
        return self.paginate(
            f"{self.api_url}/user/orgs?per_page=100",
            lambda d: select_strings(d, "login"),
            cancel,
        )

    def list_org_repositories(self, organization: str, cancel: Optional[CancellationToken] = None) -> Paginator[str]:
        return self.paginate(
            f"{self.api_url}/orgs/{esc(organization)}/repos?per_page=100",
            lambda d: select_strings(d, "name"),
            cancel,
        )

    def list_user_repositories(self, username: str, cancel: Optional[CancellationToken] = None) -> Paginator[str]:
        return self.paginate(
            f"{self.api_url}/users/{esc(username)}/repos?per_page=100",
            lambda d: select_strings(d, "name"),
            cancel,
        )

    async def get_repository(self, project: ProjectId, cancel: Optional[CancellationToken] = None) -> RepositoryInfo:
        """Fetch clone URL, browse URL and default branch of a repository.

        Raises:
            GitHubApiError: If the repository does not exist or is not visible
        """
        data = await self.executor.invoke("GET", self._repo_url(project), cancel=cancel)
        if data is None:
            raise GitHubError(f"Repository {project} not found.")
        return RepositoryInfo(
            repository_url=data["clone_url"],
            browse_url=data.get("html_url"),
            default_branch=data.get("default_branch"),
        )

    def list_branches(self, project: ProjectId, cancel: Optional[CancellationToken] = None) -> Paginator[RemoteBranch]:
        return self.paginate(self._repo_url(project, "/branches?per_page=100"), select_branches, cancel)

    def list_refs(
        self,
        owner: str,
        repository: str,
        ref_type: RefType = RefType.ALL,
        cancel: Optional[CancellationToken] = None,
    ) -> Paginator[str]:
        """List ref names with the requested prefix removed.

        Args:
            owner: Repository owner
            repository: Repository name
            ref_type: ALL (refs), BRANCH (refs/heads) or TAG (refs/tags)

        Returns:
            Paginator of names such as "main" or "feature/x"
        """
        prefix = RefType(ref_type).prefix
        url = f"{self.api_url}/repos/{esc(owner)}/{esc(repository)}/git/{prefix}"
        return self.paginate(
            url,
            lambda d: [strip_ref_prefix(ref, prefix) for ref in select_strings(d, "ref")],
            cancel,
        )

    # Pull requests and statuses

    def list_pull_requests(
        self,
        project: ProjectId,
        include_closed: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> Paginator[PullRequest]:
        state = "all" if include_closed else "open"
        return self.paginate(
            self._repo_url(project, f"/pulls?per_page=100&state={state}"),
            select_pull_requests,
            cancel,
        )

    async def merge_pull_request(
        self,
        project: ProjectId,
        number: int,
        head_commit: str,
        message: Optional[str] = None,
        method: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        await self.executor.invoke(
            "PUT",
            self._repo_url(project, f"/pulls/{number}/merge"),
            {"commit_title": message, "merge_method": method, "sha": head_commit},
            cancel=cancel,
        )

    async def create_pull_request(
        self,
        project: ProjectId,
        source: str,
        target: str,
        title: str,
        description: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Open a pull request and return its id."""
        data = await self.executor.invoke(
            "POST",
            self._repo_url(project, "/pulls"),
            {"title": title, "body": description, "head": source, "base": target},
            cancel=cancel,
        )
        if data is None:
            raise GitHubError("Pull request not found.")
        return int(data["id"])

    async def set_commit_status(
        self,
        project: ProjectId,
        commit: str,
        state: str,
        description: Optional[str] = None,
        context: Optional[str] = None,
        target_url: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        await self.executor.invoke(
            "POST",
            self._repo_url(project, f"/statuses/{quote(commit, safe='')}"),
            {"state": state, "target_url": target_url, "description": description, "context": context},
            cancel=cancel,
        )

    # Issues

    def list_issues(
        self,
        project: ProjectId,
        issue_filter: Optional[IssueFilter] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Paginator[Issue]:
        query = (issue_filter or IssueFilter()).to_query_string()
        return self.paginate(
            self._repo_url(project, f"/issues{query}"),
            lambda d: [Issue.from_json(item) for item in d or []],
            cancel,
        )

    async def get_issue(
        self,
        issue_url: str,
        status_override: Optional[str] = None,
        closed_override: Optional[bool] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Issue:
        data = await self.executor.invoke("GET", issue_url, cancel=cancel)
        if data is None:
            raise GitHubError(f"Issue not found: {issue_url}")
        return Issue.from_json(data, status_override, closed_override)

    async def create_issue(self, project: ProjectId, data: dict, cancel: Optional[CancellationToken] = None) -> int:
        """Create an issue and return its number."""
        result = await self.executor.invoke("POST", self._repo_url(project, "/issues"), data, cancel=cancel)
        if result is None:
            raise GitHubError(f"Project not found: {project}")
        return int(result["number"])

    async def update_issue(
        self,
        number: int,
        project: ProjectId,
        update: dict,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        await self.executor.invoke("PATCH", self._repo_url(project, f"/issues/{number}"), update, cancel=cancel)

    async def create_comment(
        self,
        number: int,
        project: ProjectId,
        text: str,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        await self.executor.invoke(
            "POST",
            self._repo_url(project, f"/issues/{number}/comments"),
            {"body": text},
            cancel=cancel,
        )

    # Milestones

    def list_milestones(
        self,
        project: ProjectId,
        state: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Paginator[Milestone]:
        """List milestones, most distant due date first.

        Args:
            project: Repository
            state: open, closed or all (default: all)
        """
        query = f"?state={quote(state or 'all', safe='')}&sort=due_on&direction=desc&per_page=100"
        return self.paginate(
            self._repo_url(project, f"/milestones{query}"),
            lambda d: [Milestone.from_json(item) for item in d or []],
            cancel,
        )

    async def find_milestone(
        self,
        title: str,
        project: ProjectId,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[Milestone]:
        """Find a milestone by title, ignoring case."""
        async for milestone in self.list_milestones(project, "all", cancel):
            if milestone.title.lower() == title.lower():
                return milestone
        return None

    async def create_milestone(
        self,
        title: str,
        project: ProjectId,
        cancel: Optional[CancellationToken] = None,
    ) -> Milestone:
        """Return the milestone named `title`, creating it when missing."""
        milestone = await self.find_milestone(title, project, cancel)
        if milestone is not None:
            return milestone

        data = await self.executor.invoke(
            "POST", self._repo_url(project, "/milestones"), {"title": title}, cancel=cancel
        )
        if data is None:
            raise GitHubError(f"Project not found: {project}")
        return Milestone.from_json(data)

    async def update_milestone(
        self,
        number: int,
        project: ProjectId,
        data: dict,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        await self.executor.invoke("PATCH", self._repo_url(project, f"/milestones/{number}"), data, cancel=cancel)

    # Project boards

    def list_projects(
        self,
        owner: str,
        repository: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Paginator[ProjectBoard]:
        if repository:
            url = f"{self.api_url}/repos/{esc(owner)}/{esc(repository)}/projects?state=all"
        else:
            url = f"{self.api_url}/orgs/{esc(owner)}/projects?state=all"
        return self.paginate(url, lambda d: [ProjectBoard.from_json(item) for item in d or []], cancel)

    async def list_project_columns(
        self,
        columns_url: str,
        cancel: Optional[CancellationToken] = None,
    ) -> list[ProjectColumn]:
        """Fetch a board's columns, then each column's cards, one at a time."""

        def select_columns(document: Any) -> list[tuple[str, str]]:
            columns = []
            for obj in document or []:
                cards_url, name = obj.get("cards_url"), obj.get("name")
                if not cards_url or not name:
                    logger.debug("Could not parse column: %s", obj)
                    continue
                columns.append((cards_url, name))
            return columns

        result = []
        async for cards_url, name in self.paginate(columns_url, select_columns, cancel):
            issue_urls = await self.paginate(
                cards_url, lambda d: select_strings(d, "content_url"), cancel
            ).collect()
            result.append(ProjectColumn(name=name, issue_urls=issue_urls))
        return result

    # Releases

    async def get_release(
        self,
        owner: str,
        repository: str,
        tag: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[Release]:
        """Fetch a release by tag; None when no such release exists."""
        data = await self.executor.invoke(
            "GET",
            f"{self.api_url}/repos/{esc(owner)}/{esc(repository)}/releases/tags/{esc(tag)}",
            tolerate_not_found=True,
            cancel=cancel,
        )
        return Release.from_json(data) if data is not None else None

    async def ensure_release(
        self,
        owner: str,
        repository: str,
        tag: str,
        target: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        draft: Optional[bool] = None,
        prerelease: Optional[bool] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Release:
        """Create the release for `tag`, or update it if it already exists."""
        release = Release(
            tag=tag,
            target=target,
            title=title,
            description=description,
            draft=draft,
            prerelease=prerelease,
        )
        existing = await self.get_release(owner, repository, tag, cancel)

        base = f"{self.api_url}/repos/{esc(owner)}/{esc(repository)}/releases"
        if existing is not None:
            data = await self.executor.invoke("PATCH", f"{base}/{existing.id}", release.to_payload(), cancel=cancel)
        else:
            data = await self.executor.invoke("POST", base, release.to_payload(), cancel=cancel)

        if data is None:
            raise GitHubError("Unexpected empty reply when saving release.")
        return Release.from_json(data)

    async def upload_release_asset(
        self,
        owner: str,
        repository: str,
        tag: str,
        name: str,
        content_type: str,
        source: BinaryIO,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[Any]:
        """Attach a file to an existing release.

        An asset with the same name already on the release is left alone:
        a warning is logged and nothing is uploaded.

        Args:
            owner: Repository owner
            repository: Repository name
            tag: Tag of the release, which must already exist
            name: Asset file name
            content_type: Media type of the asset
            source: Binary stream with the asset contents
            on_progress: Called with cumulative bytes sent
            cancel: Optional cancellation token

        Returns:
            The created asset document, or None if the upload was skipped

        Raises:
            GitHubError: If there is no release for `tag`
        """
        release = await self.get_release(owner, repository, tag, cancel)
        if release is None:
            raise GitHubError(f"No release found with tag {tag} in repository {owner}/{repository}")

        if release.has_asset(name):
            logger.warning("Release %s already has an asset named %s.", tag, name)
            return None

        if not release.upload_url:
            raise GitHubError(f"Release {tag} has no upload URL.")

        upload_url = expand_upload_url(release.upload_url, name)
        return await self.uploader.upload(upload_url, content_type, source, on_progress, cancel)
