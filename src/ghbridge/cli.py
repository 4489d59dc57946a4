"""Click CLI for ghbridge."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from trogon import tui

from ghbridge import __version__
from ghbridge.client import GitHubClient, GitHubError
from ghbridge.config import EDITABLE_SETTINGS, TOKEN_ENV_VAR, GhBridgeConfig
from ghbridge.credentials import (
    RESOURCE_KINDS,
    GitHubAccount,
    RepositoryResource,
    create_client,
    get_resource,
    resolve_credentials,
    resource_from_dict,
)
from ghbridge.models import IssueFilter, ProjectId, RefType, Release
from ghbridge.operations import (
    EnsureMilestoneOperation,
    EnsureReleaseOperation,
    IssueTracker,
    MilestoneConfiguration,
    UploadReleaseAssetsOperation,
)
from ghbridge.suggestions import suggest_namespaces, suggest_repository_names


@dataclass
class CliContext:
    """Options shared by every command."""

    config: GhBridgeConfig
    account: GitHubAccount
    # Values given on the command line, re-resolved per repository connection
    options: dict[str, Optional[str]] = field(default_factory=dict)

    def open_client(self) -> GitHubClient:
        return create_client(self.account, self.config)

    def account_for(self, resource: RepositoryResource) -> GitHubAccount:
        return resolve_credentials(self.config, resource, **self.options)


def run_async(coro: Awaitable[Any]) -> Any:
    """Run `coro` to completion, reporting client errors and exiting 1."""
    try:
        return asyncio.run(coro)
    except (GitHubError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


def run_with_client(ctx: click.Context, action: Callable[[GitHubClient], Awaitable[Any]]) -> Any:
    """Run `action` with a fresh client, reporting client errors and exiting 1."""
    state: CliContext = ctx.obj

    async def runner() -> Any:
        async with state.open_client() as client:
            return await action(client)

    return run_async(runner())


def parse_project(value: str) -> ProjectId:
    try:
        return ProjectId.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


@tui()
@click.group()
@click.version_option(version=__version__, prog_name="ghbridge")
@click.option("--api-url", envvar="GHBRIDGE_API_URL", help="GitHub API base URL")
@click.option("--username", "-u", help="User name (basic authentication)")
@click.option("--token", "-t", envvar=TOKEN_ENV_VAR, help="GitHub personal access token")
@click.option("--verbose", "-v", is_flag=True, help="Log every request")
@click.pass_context
def cli(
    ctx: click.Context,
    api_url: Optional[str],
    username: Optional[str],
    token: Optional[str],
    verbose: bool,
) -> None:
    """ghbridge - release automation for GitHub.

    Quick start:
        ghbridge orgs                                List your organizations
        ghbridge branches owner/repo                 List branches
        ghbridge release ensure owner/repo v1.0      Create or update a release
        ghbridge release upload owner/repo v1.0 -d dist
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = GhBridgeConfig.load()
    options = {"username": username, "token": token, "api_url": api_url}
    account = resolve_credentials(config, **options)
    ctx.obj = CliContext(config=config, account=account, options=options)


# Configuration commands
@cli.group()
def config() -> None:
    """Show or change saved settings."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current settings."""
    cfg: GhBridgeConfig = ctx.obj.config
    click.echo(f"Config file: {cfg.get_config_path()}")
    for key, description in EDITABLE_SETTINGS:
        click.echo(f"  {key} = {getattr(cfg, key)!r}  ({description})")
    if cfg.resources:
        click.echo("  resources:")
        for name, resource in cfg.resources.items():
            click.echo(f"    {name}: {resource}")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Change one setting.

    KEY: Setting name (see `ghbridge config show`)
    """
    cfg: GhBridgeConfig = ctx.obj.config
    try:
        cfg.set_value(key, value)
    except KeyError as e:
        click.echo(f"Error: {e.args[0]}", err=True)
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"Error: invalid value for {key}: {e}", err=True)
        raise SystemExit(1)
    cfg.save()
    click.echo(f"✓ {key} = {getattr(cfg, key)!r}")


@config.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def config_reset(ctx: click.Context, yes: bool) -> None:
    """Restore default settings."""
    if not yes:
        click.confirm("Reset all settings to defaults?", abort=True)
    cfg: GhBridgeConfig = ctx.obj.config
    cfg.reset()
    cfg.save()
    click.echo("✓ Settings reset")


# Repository connection commands
@cli.group()
def resource() -> None:
    """Manage named repository connections."""
    pass


@resource.command("add")
@click.argument("name")
@click.option("--url", "repository_url", help="Remote URL (generic and legacy connections)")
@click.option("--repository", "-r", help="Repository name (GitHub connections)")
@click.option("--organization", "-o", help="Owning organization (default: your user)")
@click.option("--legacy-api-url", help="API URL saved with an older GitHub connection")
@click.option(
    "--kind",
    type=click.Choice(sorted(RESOURCE_KINDS)),
    help="Connection kind (default: github with --repository, else generic)",
)
@click.pass_context
def resource_add(
    ctx: click.Context,
    name: str,
    repository_url: Optional[str],
    repository: Optional[str],
    organization: Optional[str],
    legacy_api_url: Optional[str],
    kind: Optional[str],
) -> None:
    """Save repository connection NAME."""
    cfg: GhBridgeConfig = ctx.obj.config
    kind = kind or ("github" if repository else "generic")
    values = {
        "kind": kind,
        "repository_url": repository_url,
        "repository": repository,
        "organization": organization,
        "legacy_api_url": legacy_api_url,
    }
    try:
        created = resource_from_dict({k: v for k, v in values.items() if v is not None})
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    cfg.resources[name] = asdict(created)
    cfg.save()
    click.echo(f"✓ {name} ({kind})")


@resource.command("list")
@click.pass_context
def resource_list(ctx: click.Context) -> None:
    """List saved repository connections."""
    cfg: GhBridgeConfig = ctx.obj.config
    if not cfg.resources:
        click.echo("No repository connections defined.")
        return
    for name, data in sorted(cfg.resources.items()):
        target = data.get("repository_url") or "/".join(
            part for part in (data.get("organization"), data.get("repository")) if part
        )
        click.echo(f"{name}  [{data.get('kind', 'github')}]  {target}")


@resource.command("remove")
@click.argument("name")
@click.pass_context
def resource_remove(ctx: click.Context, name: str) -> None:
    """Forget repository connection NAME."""
    cfg: GhBridgeConfig = ctx.obj.config
    if cfg.resources.pop(name, None) is None:
        click.echo(f"Error: Repository connection '{name}' is not defined.", err=True)
        raise SystemExit(1)
    cfg.save()
    click.echo(f"✓ Removed {name}")


@resource.command("clone-url")
@click.argument("name")
@click.pass_context
def resource_clone_url(ctx: click.Context, name: str) -> None:
    """Print the clone URL of repository connection NAME."""
    state: CliContext = ctx.obj

    async def resolve() -> str:
        connection = get_resource(state.config, name)
        account = state.account_for(connection)
        return await connection.resolve_clone_url(lambda: create_client(account, state.config), account)

    click.echo(run_async(resolve()))


# Listing commands
@cli.command("orgs")
@click.pass_context
def orgs(ctx: click.Context) -> None:
    """List organizations, followed by your user name."""
    names = run_with_client(ctx, lambda client: suggest_namespaces(client, ctx.obj.account))
    for name in names:
        click.echo(name)


@cli.command("repos")
@click.argument("namespace", required=False)
@click.pass_context
def repos(ctx: click.Context, namespace: Optional[str]) -> None:
    """List repositories of an organization or of your user.

    NAMESPACE: Organization name (default: your user)
    """
    names = run_with_client(
        ctx, lambda client: suggest_repository_names(client, ctx.obj.account, namespace)
    )
    if not names:
        click.echo("No repositories found.")
        return
    for name in names:
        click.echo(name)


@cli.command("branches")
@click.argument("repository")
@click.pass_context
def branches(ctx: click.Context, repository: str) -> None:
    """List branches of OWNER/REPO."""
    project = parse_project(repository)
    result = run_with_client(ctx, lambda client: client.list_branches(project).collect())
    for branch in result:
        badge = " [protected]" if branch.is_protected else ""
        click.echo(f"{branch.name}  {branch.commit[:10]}{badge}")


@cli.command("prs")
@click.argument("repository")
@click.option("--all", "include_closed", is_flag=True, help="Include closed pull requests")
@click.pass_context
def prs(ctx: click.Context, repository: str, include_closed: bool) -> None:
    """List pull requests of OWNER/REPO."""
    project = parse_project(repository)
    result = run_with_client(
        ctx, lambda client: client.list_pull_requests(project, include_closed).collect()
    )
    if not result:
        click.echo("No pull requests found.")
        return
    for pr in result:
        state = "closed" if pr.closed else "open"
        click.echo(f"#{pr.id} [{state}] {pr.title} ({pr.source_branch} → {pr.target_branch})")


@cli.command("refs")
@click.argument("repository")
@click.option(
    "--type",
    "ref_type",
    type=click.Choice([t.value for t in RefType]),
    default=RefType.ALL.value,
    help="Kind of refs to list",
)
@click.pass_context
def refs(ctx: click.Context, repository: str, ref_type: str) -> None:
    """List git refs of OWNER/REPO."""
    project = parse_project(repository)
    result = run_with_client(
        ctx,
        lambda client: client.list_refs(project.owner, project.repository, RefType(ref_type)).collect(),
    )
    for name in result:
        click.echo(name)


@cli.command("issues")
@click.argument("repository")
@click.option("--milestone", "-m", help="Milestone title")
@click.option("--labels", "-l", help="Comma separated label names")
@click.option("--query", "-q", help="Custom filter query string (overrides other filters)")
@click.pass_context
def issues(
    ctx: click.Context,
    repository: str,
    milestone: Optional[str],
    labels: Optional[str],
    query: Optional[str],
) -> None:
    """List issues of OWNER/REPO."""
    project = parse_project(repository)

    async def action(client: GitHubClient) -> list:
        if query or milestone:
            tracker = IssueTracker(client, project)
            issue_filter = await tracker.create_query_filter(milestone, labels, query)
        else:
            issue_filter = IssueFilter(labels=labels)
        return await client.list_issues(project, issue_filter).collect()

    result = run_with_client(ctx, action)
    if not result:
        click.echo("No issues found.")
        return
    for issue in result:
        click.echo(f"#{issue.id} [{issue.status}] {issue.title}")


# Milestone commands
@cli.group()
def milestone() -> None:
    """Milestone commands."""
    pass


@milestone.command("ensure")
@click.argument("repository")
@click.argument("title")
@click.option("--due-date", help="Due date (YYYY-MM-DD or ISO timestamp)")
@click.option("--description", "-d", help="Milestone description")
@click.option("--state", type=click.Choice(["open", "closed"]), help="Milestone state")
@click.pass_context
def milestone_ensure(
    ctx: click.Context,
    repository: str,
    title: str,
    due_date: Optional[str],
    description: Optional[str],
    state: Optional[str],
) -> None:
    """Make sure milestone TITLE exists in OWNER/REPO."""
    project = parse_project(repository)
    template = MilestoneConfiguration(title=title, description=description, due_date=due_date, state=state)

    result = run_with_client(ctx, lambda client: EnsureMilestoneOperation(client, project, template).configure())
    click.echo(f"✓ Milestone #{result.number}: {result.title} ({result.state or 'open'})")


# Release commands
@cli.group()
def release() -> None:
    """Release commands."""
    pass


@release.command("ensure")
@click.argument("repository")
@click.argument("tag")
@click.option("--target", help="Branch or commit the tag is created from")
@click.option("--title", help="Release title")
@click.option("--notes", help="Release notes")
@click.option("--draft/--no-draft", default=None, help="Mark as draft")
@click.option("--prerelease/--no-prerelease", default=None, help="Mark as prerelease")
@click.pass_context
def release_ensure(
    ctx: click.Context,
    repository: str,
    tag: str,
    target: Optional[str],
    title: Optional[str],
    notes: Optional[str],
    draft: Optional[bool],
    prerelease: Optional[bool],
) -> None:
    """Create or update the release for TAG in OWNER/REPO."""
    project = parse_project(repository)
    template = Release(
        tag=tag, target=target, title=title, description=notes, draft=draft, prerelease=prerelease
    )
    result = run_with_client(ctx, lambda client: EnsureReleaseOperation(client, project, template).execute())
    click.echo(f"✓ Release {result.tag} (id {result.id})")


@release.command("upload")
@click.argument("repository")
@click.argument("tag")
@click.option("--directory", "-d", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".", help="Source directory")
@click.option("--include", "-i", "includes", multiple=True, help="Glob mask of files to upload (repeatable)")
@click.option("--exclude", "-x", "excludes", multiple=True, help="Glob mask of files to skip (repeatable)")
@click.option("--content-type", help="Content type (default: detect from file extension)")
@click.pass_context
def release_upload(
    ctx: click.Context,
    repository: str,
    tag: str,
    directory: Path,
    includes: tuple[str, ...],
    excludes: tuple[str, ...],
    content_type: Optional[str],
) -> None:
    """Upload files from a directory as assets of release TAG."""
    project = parse_project(repository)

    def action(client: GitHubClient) -> Awaitable[list[Path]]:
        operation = UploadReleaseAssetsOperation(
            client,
            project,
            tag,
            directory,
            includes=includes or None,
            excludes=excludes or None,
            content_type=content_type,
        )
        return operation.execute()

    uploaded = run_with_client(ctx, action)
    for path in uploaded:
        click.echo(f"✓ Uploaded {path.name}")
    click.echo(f"\nTotal uploaded: {len(uploaded)}")


# Commit status commands
@cli.group()
def status() -> None:
    """Commit status commands."""
    pass


@status.command("set")
@click.argument("repository")
@click.argument("commit")
@click.argument("state", type=click.Choice(["error", "failure", "pending", "success"]))
@click.option("--description", "-d", help="Short status description")
@click.option("--context", "-c", "status_context", help="Status context label")
@click.option("--target-url", help="Link shown with the status")
@click.pass_context
def status_set(
    ctx: click.Context,
    repository: str,
    commit: str,
    state: str,
    description: Optional[str],
    status_context: Optional[str],
    target_url: Optional[str],
) -> None:
    """Set the status of COMMIT in OWNER/REPO."""
    project = parse_project(repository)
    run_with_client(
        ctx,
        lambda client: client.set_commit_status(
            project, commit, state, description, status_context, target_url
        ),
    )
    click.echo(f"✓ {commit[:10]}: {state}")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
