"""Authenticated request execution against the GitHub REST API."""

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ghbridge import __version__
from ghbridge.client.cache import ResponseCache
from ghbridge.client.cancellation import CancellationToken, run_cancellable
from ghbridge.client.errors import (
    GitHubApiError,
    GitHubCancelledError,
    GitHubError,
    GitHubTransportError,
    error_from_response,
)
from ghbridge.client.pagination import Page, parse_next_link


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_MEDIA_TYPE = "application/vnd.github.v3+json"
DEFAULT_PREVIEWS = [
    "application/vnd.github.inertia-preview+json",  # projects
]
USER_AGENT = f"ghbridge/{__version__}"


@dataclass
class ClientSettings:
    """Connection settings for one GitHub API client."""

    api_url: str = DEFAULT_API_URL
    username: Optional[str] = None
    token: Optional[str] = None
    previews: list[str] = field(default_factory=lambda: list(DEFAULT_PREVIEWS))
    timeout: float = 30.0

    def __post_init__(self) -> None:
        self.api_url = (self.api_url or DEFAULT_API_URL).rstrip("/")
        if self.username and not self.token:
            raise ValueError(
                "If a username is specified, a token must be specified as well."
            )

    @property
    def identity(self) -> str:
        """Cache identity; contains a hash of the token, never the token itself."""
        token_hash = hashlib.sha256(self.token.encode("utf-8")).hexdigest()[:16] if self.token else ""
        if self.username:
            return f"user:{self.username}:{token_hash}"
        if self.token:
            return f"token:{token_hash}"
        return ""


def build_headers(settings: ClientSettings) -> dict[str, str]:
    """Headers sent with every request made by a client."""
    headers = {
        "Accept": ", ".join([API_MEDIA_TYPE, *settings.previews]),
        "User-Agent": USER_AGENT,
    }
    if settings.username:
        credentials = f"{settings.username}:{settings.token}".encode("utf-8")
        headers["Authorization"] = "Basic " + base64.b64encode(credentials).decode("ascii")
    elif settings.token:
        headers["Authorization"] = f"Bearer {settings.token}"
    return headers


def create_http_client(
    settings: ClientSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers=build_headers(settings),
        timeout=settings.timeout,
        follow_redirects=True,
        transport=transport,
    )


def strip_nulls(value: Any) -> Any:
    """Drop None-valued fields from mappings, recursively."""
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [strip_nulls(v) for v in value]
    return value


def decode_json(response: httpx.Response) -> Any:
    """Parse a success body; an empty body decodes to None."""
    if not response.content.strip():
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise GitHubError(f"Invalid JSON in response from {response.request.url}") from exc


async def send_cancellable(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    cancel: Optional[CancellationToken] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send one request, translating transport failures.

    Any httpx request failure (network, decoding, redirects) becomes
    GitHubTransportError. One that happens because the caller cancelled is
    reported as GitHubCancelledError instead.
    """
    try:
        return await run_cancellable(http.request(method, url, **kwargs), cancel)
    except httpx.RequestError as exc:
        if cancel is not None and cancel.is_cancelled:
            raise GitHubCancelledError() from exc
        raise GitHubTransportError(f"{method} {url} failed: {exc}") from exc


class RequestExecutor:
    """Issues single API calls and decodes their JSON replies.

    When a ResponseCache is supplied, GET requests become conditional: the
    stored ETag is sent as If-None-Match and a 304 reply is answered from
    the cache. Other methods never touch the cache.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        identity: str = "",
        cache: Optional[ResponseCache] = None,
    ):
        self.http = http
        self.identity = identity
        self.cache = cache

    async def invoke(
        self,
        method: str,
        url: str,
        body: Optional[Any] = None,
        tolerate_not_found: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[Any]:
        """Send a request and return its decoded JSON body.

        Args:
            method: HTTP method
            url: Absolute request URL
            body: JSON-serializable payload; None fields are omitted
            tolerate_not_found: Return None instead of raising on 404
            cancel: Optional cancellation token

        Returns:
            Decoded JSON, or None for an empty body or a tolerated 404

        Raises:
            GitHubApiError: Non-success reply
            GitHubTransportError: Network failure
            GitHubCancelledError: The token was cancelled
        """
        result = await self._exchange(method.upper(), url, body, tolerate_not_found, cancel)
        return None if result is None else result[0]

    async def fetch_page(self, url: str, cancel: Optional[CancellationToken] = None) -> Page:
        """GET one page of a paginated listing."""
        body, link_header = await self._exchange("GET", url, None, False, cancel)
        return Page(body=body, next_url=parse_next_link(link_header))

    async def _exchange(
        self,
        method: str,
        url: str,
        body: Optional[Any],
        tolerate_not_found: bool,
        cancel: Optional[CancellationToken],
    ) -> Optional[tuple[Any, str]]:
        if self.cache is None or method != "GET":
            return await self._send(method, url, body, tolerate_not_found, cancel, None)

        key = self.cache.key(self.identity, url)
        async with self.cache.hold(key, cancel):
            return await self._send(method, url, body, tolerate_not_found, cancel, key)

    async def _send(
        self,
        method: str,
        url: str,
        body: Optional[Any],
        tolerate_not_found: bool,
        cancel: Optional[CancellationToken],
        cache_key: Optional[tuple[str, str]],
    ) -> Optional[tuple[Any, str]]:
        if cancel is not None:
            cancel.raise_if_cancelled()

        logger.debug("%s %s", method, url)

        headers: dict[str, str] = {}
        content: Optional[bytes] = None
        if body is not None:
            content = json.dumps(strip_nulls(body)).encode("utf-8")
            headers["Content-Type"] = "application/json"

        cached = self.cache.get(cache_key) if cache_key is not None else None
        if cached is not None:
            headers["If-None-Match"] = cached.etag

        response = await send_cancellable(
            self.http, method, url, cancel, content=content, headers=headers
        )

        if response.status_code == 304 and cache_key is not None:
            if cached is None:
                raise GitHubApiError(304, "Not modified, but no cached response is available")
            logger.debug("Not modified, reusing cached response for %s", url)
            return cached.body, cached.link_header

        if response.is_success:
            link_header = response.headers.get("link", "")
            decoded = decode_json(response)
            etag = response.headers.get("etag")
            if cache_key is not None and response.status_code == 200:
                if etag:
                    self.cache.put(cache_key, etag, link_header, decoded)
                else:
                    self.cache.discard(cache_key)
            return decoded, link_header

        if response.status_code == 404 and tolerate_not_found:
            return None

        raise error_from_response(response)
