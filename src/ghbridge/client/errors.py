"""Error taxonomy for the GitHub API client.

Every failure the client raises derives from GitHubError:

- GitHubCancelledError: the caller asked to stop
- GitHubApiError: the server answered with a non-success status
- GitHubTransportError: the request never produced a response

A tolerated 404 is not an error at all; those calls return None.
"""

import json
from typing import Optional

import httpx


class GitHubError(Exception):
    """Base class for all errors raised by the GitHub client."""


class GitHubCancelledError(GitHubError):
    """Raised when an operation stops because its cancellation token fired."""

    def __init__(self, message: str = "Operation was cancelled."):
        super().__init__(message)


class GitHubTransportError(GitHubError):
    """Network-level failure; the original exception is kept as __cause__."""


class GitHubApiError(GitHubError):
    """A non-success reply from the API."""

    def __init__(
        self,
        status_code: int,
        server_message: Optional[str] = None,
        details: Optional[list[tuple[str, str]]] = None,
        message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.server_message = server_message
        self.details = list(details or [])
        self.message = message or format_error_message(status_code, server_message, self.details)
        super().__init__(self.message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        """True for "already exists" style rejections (409 and 422)."""
        return self.status_code in (409, 422)


def format_error_message(
    status_code: int,
    server_message: Optional[str] = None,
    details: Optional[list[tuple[str, str]]] = None,
) -> str:
    """Build the canonical "Server replied with ..." message."""
    message = f"Server replied with {status_code}"

    if server_message and server_message.strip():
        message += f": {server_message}"

    detail_strings = [f"{resource} {code}".strip() for resource, code in details or []]
    detail_strings = [d for d in detail_strings if d]
    if detail_strings:
        message += f" ({', '.join(detail_strings)})"

    return message


def _is_json(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower().startswith("application/json")


def _string_field(obj: dict, name: str) -> str:
    value = obj.get(name)
    if value is None:
        return ""
    return str(value).strip()


def error_from_response(response: httpx.Response) -> GitHubApiError:
    """Turn a non-success response into a GitHubApiError.

    The response body must already have been read. JSON bodies of the form
    {"message": ..., "errors": [{"resource": ..., "code": ...}]} are parsed
    into the message and detail list; anything else is appended as raw text.

    Args:
        response: The received HTTP response

    Returns:
        GitHubApiError describing the failure
    """
    status = response.status_code

    if _is_json(response):
        try:
            document = json.loads(response.content or b"null")
        except ValueError:
            # Mislabelled body; reported as raw text below
            pass
        else:
            server_message = None
            details: list[tuple[str, str]] = []

            if isinstance(document, dict):
                message = document.get("message")
                if isinstance(message, str):
                    server_message = message

                errors = document.get("errors")
                if isinstance(errors, list):
                    for item in errors:
                        if isinstance(item, dict):
                            details.append((_string_field(item, "resource"), _string_field(item, "code")))

            return GitHubApiError(status, server_message, details)

    text = response.text
    return GitHubApiError(status, text if text.strip() else None)
