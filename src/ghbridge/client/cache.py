"""Conditional GET cache keyed by caller identity and URL."""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional

from ghbridge.client.cancellation import CancellationToken, run_cancellable


logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 256
DEFAULT_TTL = 300.0


@dataclass
class CacheEntry:
    """Last successful GET for one (identity, url) key."""

    etag: str
    link_header: str
    body: Any
    stored_at: float


class ResponseCache:
    """Bounded LRU store of validated GET responses.

    One instance may be passed to several clients. Entries expire after `ttl`
    seconds and the least recently used entry is evicted once `max_entries`
    is reached. Writes made through the client never invalidate entries.

    Per-key locks exist only while some request holds or waits for them.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: Optional[float] = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[tuple[str, str], CacheEntry]" = OrderedDict()
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    @staticmethod
    def key(identity: Optional[str], url: str) -> tuple[str, str]:
        return (identity or "", url)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return self.get(key) is not None

    @property
    def active_locks(self) -> int:
        """Number of keys currently locked or waited on."""
        return len(self._locks)

    @asynccontextmanager
    async def hold(
        self,
        key: tuple[str, str],
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[None]:
        """Serialize the read-then-write of one key.

        Waiting for the lock stops as soon as `cancel` fires.

        Raises:
            GitHubCancelledError: The token fired while waiting
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1

        try:
            await run_cancellable(lock.acquire(), cancel)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def get(self, key: tuple[str, str]) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self.ttl is not None and self._clock() - entry.stored_at > self.ttl:
            logger.debug("Cache entry expired for %s", key[1])
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry

    def put(self, key: tuple[str, str], etag: str, link_header: str, body: Any) -> None:
        self._entries[key] = CacheEntry(
            etag=etag,
            link_header=link_header,
            body=body,
            stored_at=self._clock(),
        )
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def discard(self, key: tuple[str, str]) -> None:
        """Forget the entry for `key`, if any."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
