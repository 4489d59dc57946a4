"""Streaming uploads with progress reporting and cancellation."""

import asyncio
import io
import logging
import os
import threading
from typing import Any, AsyncIterator, BinaryIO, Callable, Optional
from urllib.parse import quote

import httpx

from ghbridge.client.cancellation import CancellationToken
from ghbridge.client.errors import error_from_response
from ghbridge.client.executor import decode_json, send_cancellable


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 81920


def expand_upload_url(template: str, name: str) -> str:
    """Expand an upload URL template such as .../assets{?name,label}.

    Only the name parameter is supported: the template is cut at its first
    "{" and ?name=<encoded name> is appended.
    """
    index = template.find("{")
    base = template if index < 0 else template[:index]
    return f"{base}?name={quote(name, safe='')}"


def stream_length(source: BinaryIO) -> Optional[int]:
    """Bytes remaining in `source`, or None when it cannot be known up front."""
    try:
        return os.fstat(source.fileno()).st_size - source.tell()
    except (AttributeError, OSError, ValueError):
        pass

    try:
        if source.seekable():
            position = source.tell()
            end = source.seek(0, io.SEEK_END)
            source.seek(position)
            return end - position
    except (AttributeError, OSError):
        pass

    return None


class UploadProgress:
    """Thread-safe progress sink for one upload.

    The uploading coroutine calls report(); any other thread may poll
    position/total or snapshot() at the same time.
    """

    def __init__(self, name: str = "", total: Optional[int] = None):
        self._lock = threading.Lock()
        self._name = name
        self._total = total
        self._position = 0

    def start(self, name: str, total: Optional[int]) -> None:
        with self._lock:
            self._name = name
            self._total = total
            self._position = 0

    def report(self, position: int) -> None:
        with self._lock:
            self._position = position

    __call__ = report

    @property
    def position(self) -> int:
        with self._lock:
            return self._position

    @property
    def total(self) -> Optional[int]:
        with self._lock:
            return self._total

    def snapshot(self) -> tuple[str, int, Optional[int]]:
        """Return (name, position, total) read atomically."""
        with self._lock:
            return self._name, self._position, self._total


class StreamUploader:
    """Pushes a binary stream to an upload endpoint in fixed-size chunks."""

    def __init__(self, http: httpx.AsyncClient, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.http = http
        self.chunk_size = chunk_size

    async def upload(
        self,
        url: str,
        content_type: str,
        source: BinaryIO,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[Any]:
        """Upload the remainder of `source` to `url`.

        Args:
            url: Upload endpoint
            content_type: Media type of the payload
            source: Readable binary stream, consumed by this call
            on_progress: Called with the cumulative bytes sent after each chunk
            cancel: Optional cancellation token

        Returns:
            Decoded JSON reply, or None for an empty body

        Raises:
            GitHubApiError: Non-success reply
            GitHubTransportError: Network failure
            GitHubCancelledError: The token was cancelled
        """
        length = stream_length(source)
        headers = {"Content-Type": content_type}
        if length is not None:
            headers["Content-Length"] = str(length)

        logger.debug(
            "POST %s (%s, %s bytes)", url, content_type, length if length is not None else "unknown"
        )

        response = await send_cancellable(
            self.http,
            "POST",
            url,
            cancel,
            content=self._chunks(source, on_progress, cancel),
            headers=headers,
        )

        if not response.is_success:
            raise error_from_response(response)
        return decode_json(response)

    async def _chunks(
        self,
        source: BinaryIO,
        on_progress: Optional[Callable[[int], None]],
        cancel: Optional[CancellationToken],
    ) -> AsyncIterator[bytes]:
        sent = 0
        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()

            chunk = await asyncio.to_thread(source.read, self.chunk_size)
            if not chunk:
                break

            yield chunk
            sent += len(chunk)
            if on_progress is not None:
                on_progress(sent)
