"""Cursor pagination over Link-header "next" relations."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Iterator, Optional, TypeVar

from ghbridge.client.cancellation import CancellationToken


logger = logging.getLogger(__name__)

T = TypeVar("T")

NEXT_PAGE_LINK_PATTERN = re.compile(r'<(?P<uri>[^>]+)>;\s*rel="next"', re.IGNORECASE)


@dataclass
class Page:
    """Decoded body of one paginated response and the link to the next one."""

    body: Any
    next_url: Optional[str] = None


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """Extract the rel="next" URI from a Link header value.

    Format: <https://api.github.com/...?page=2>; rel="next", <...>; rel="last"

    Returns:
        Next page URL or None if the header has no next relation
    """
    if not link_header:
        return None
    match = NEXT_PAGE_LINK_PATTERN.search(link_header)
    return match.group("uri") if match else None


class Paginator(Generic[T]):
    """Lazy async sequence of items projected from consecutive pages.

    A page is requested only once every item of the previous page has been
    consumed, so at most one request is in flight. The cursor is consumed as
    iteration proceeds; a Paginator cannot be restarted.

    With max_pages left as None the server's next links are followed for as
    long as it keeps sending them.
    """

    def __init__(
        self,
        fetch_page: Callable[[str, Optional[CancellationToken]], Awaitable[Page]],
        url: str,
        projector: Callable[[Any], Iterable[Optional[T]]],
        cancel: Optional[CancellationToken] = None,
        max_pages: Optional[int] = None,
    ):
        self._fetch_page = fetch_page
        self._next_url: Optional[str] = url
        self._projector = projector
        self._cancel = cancel
        self._max_pages = max_pages
        self._items: Iterator[Optional[T]] = iter(())
        self.pages_fetched = 0

    def __aiter__(self) -> "Paginator[T]":
        return self

    async def __anext__(self) -> T:
        while True:
            for item in self._items:
                if item is not None:
                    return item

            if self._next_url is None:
                raise StopAsyncIteration

            if self._max_pages is not None and self.pages_fetched >= self._max_pages:
                logger.warning(
                    "Stopped after %d pages; server still offers %s",
                    self.pages_fetched,
                    self._next_url,
                )
                self._next_url = None
                raise StopAsyncIteration

            await self._load_next_page()

    async def _load_next_page(self) -> None:
        if self._cancel is not None:
            self._cancel.raise_if_cancelled()

        url = self._next_url
        page = await self._fetch_page(url, self._cancel)
        self.pages_fetched += 1
        logger.debug("Fetched page %d from %s", self.pages_fetched, url)

        self._next_url = page.next_url
        self._items = iter(self._projector(page.body) if page.body is not None else ())

    async def collect(self) -> list[T]:
        """Drain the remaining items into a list."""
        return [item async for item in self]
