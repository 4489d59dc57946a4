"""Release operations: ensure a release exists and attach assets to it."""

import fnmatch
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ghbridge.client import CancellationToken, GitHubClient, GitHubError, UploadProgress
from ghbridge.models import ProjectId, Release


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class OperationProgress:
    percent: Optional[int]
    message: str


def format_size(size: int) -> str:
    """Human readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def match_files(
    directory: Path,
    includes: Optional[Sequence[str]] = None,
    excludes: Optional[Sequence[str]] = None,
) -> list[Path]:
    """Files under `directory` matching any include mask and no exclude mask.

    Masks are glob patterns matched against the path relative to
    `directory` using forward slashes.
    """
    includes = list(includes or ["*"])
    excludes = list(excludes or [])

    matched = []
    for path in sorted(directory.rglob("*")):
        if not path.is_file():
            continue
        relative = path.relative_to(directory).as_posix()
        if not any(fnmatch.fnmatch(relative, mask) for mask in includes):
            continue
        if any(fnmatch.fnmatch(relative, mask) for mask in excludes):
            continue
        matched.append(path)
    return matched


def guess_content_type(file_name: str) -> str:
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or DEFAULT_CONTENT_TYPE


class EnsureReleaseOperation:
    """Create or update the release for a tag."""

    def __init__(self, client: GitHubClient, project: ProjectId, template: Release):
        self.client = client
        self.project = project
        self.template = template

    async def execute(self, cancel: Optional[CancellationToken] = None) -> Release:
        if not self.template.tag:
            raise GitHubError("Missing required argument: Tag")
        return await self.client.ensure_release(
            self.project.owner,
            self.project.repository,
            self.template.tag,
            target=self.template.target,
            title=self.template.title,
            description=self.template.description,
            draft=self.template.draft,
            prerelease=self.template.prerelease,
            cancel=cancel,
        )


class UploadReleaseAssetsOperation:
    """Upload files as attachments to an existing GitHub release."""

    def __init__(
        self,
        client: GitHubClient,
        project: ProjectId,
        tag: Optional[str],
        source_directory: Path,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
        content_type: Optional[str] = None,
    ):
        self.client = client
        self.project = project
        self.tag = tag
        self.source_directory = Path(source_directory)
        self.includes = includes
        self.excludes = excludes
        self.content_type = content_type
        self.progress = UploadProgress()

    def get_progress(self) -> Optional[OperationProgress]:
        """Progress of the current file; safe to call from any thread."""
        name, position, total = self.progress.snapshot()
        if not name:
            return None

        if total:
            percent = int(100 * position / total)
            return OperationProgress(
                percent, f"Uploading {name} ({format_size(position)} / {format_size(total)})"
            )
        return OperationProgress(None, f"Uploading {name} ({format_size(position)})")

    async def execute(self, cancel: Optional[CancellationToken] = None) -> list[Path]:
        """Upload every matching file and return the ones that were sent.

        Raises:
            GitHubError: Missing tag or release
        """
        if not self.tag:
            raise GitHubError("Missing required argument: Tag")

        files = match_files(self.source_directory, self.includes, self.excludes)
        if not files:
            logger.warning("No files matched.")
            return []

        uploaded = []
        for path in files:
            size = path.stat().st_size
            content_type = self.content_type or guess_content_type(path.name)
            self.progress.start(path.name, size)

            logger.debug("Uploading %s as %s (%s)...", path, content_type, format_size(size))
            with open(path, "rb") as stream:
                result = await self.client.upload_release_asset(
                    self.project.owner,
                    self.project.repository,
                    self.tag,
                    path.name,
                    content_type,
                    stream,
                    on_progress=self.progress.report,
                    cancel=cancel,
                )

            if result is not None:
                logger.info("%s uploaded.", path)
                uploaded.append(path)

        return uploaded
