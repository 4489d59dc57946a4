"""GitHub REST API client engine."""

from .cache import CacheEntry, ResponseCache
from .cancellation import CancellationToken, run_cancellable
from .errors import (
    GitHubApiError,
    GitHubCancelledError,
    GitHubError,
    GitHubTransportError,
    error_from_response,
)
from .executor import DEFAULT_API_URL, ClientSettings, RequestExecutor
from .github import GitHubClient
from .pagination import Page, Paginator, parse_next_link
from .upload import DEFAULT_CHUNK_SIZE, StreamUploader, UploadProgress, expand_upload_url

__all__ = [
    "CacheEntry",
    "CancellationToken",
    "ClientSettings",
    "DEFAULT_API_URL",
    "DEFAULT_CHUNK_SIZE",
    "GitHubApiError",
    "GitHubCancelledError",
    "GitHubClient",
    "GitHubError",
    "GitHubTransportError",
    "Page",
    "Paginator",
    "RequestExecutor",
    "ResponseCache",
    "StreamUploader",
    "UploadProgress",
    "error_from_response",
    "expand_upload_url",
    "parse_next_link",
    "run_cancellable",
]
