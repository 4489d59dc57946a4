"""Cooperative cancellation for long-running client calls."""

import asyncio
import threading
from typing import Awaitable, Optional, TypeVar

from ghbridge.client.errors import GitHubCancelledError


T = TypeVar("T")


class CancellationToken:
    """A one-shot cancellation signal.

    One token is threaded through a whole multi-page fetch or upload.
    cancel() may be called from any thread; coroutines waiting on the token
    are woken on their own event loop.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._waiters: set[asyncio.Future] = set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation and wake every waiting coroutine."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            waiters = list(self._waiters)

        for waiter in waiters:
            waiter.get_loop().call_soon_threadsafe(_release, waiter)

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise GitHubCancelledError()

    async def wait(self) -> None:
        """Suspend until cancel() is called."""
        waiter = asyncio.get_running_loop().create_future()
        with self._lock:
            if self._cancelled.is_set():
                return
            self._waiters.add(waiter)
        try:
            await waiter
        finally:
            with self._lock:
                self._waiters.discard(waiter)


def _release(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(None)


async def run_cancellable(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await `awaitable`, aborting it as soon as `token` is cancelled.

    The in-flight operation is cancelled immediately rather than at the next
    page or chunk boundary, and the caller sees GitHubCancelledError instead
    of whatever transport failure the abort produced.
    """
    if token is None:
        return await awaitable

    work = asyncio.ensure_future(awaitable)
    if token.is_cancelled:
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise GitHubCancelledError()

    stop = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        stop.cancel()
        raise

    if work.done():
        stop.cancel()
        await asyncio.gather(stop, return_exceptions=True)
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise GitHubCancelledError()
