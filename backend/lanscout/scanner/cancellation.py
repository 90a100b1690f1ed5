"""
Cancellation token passed through every probe of a scan.

Probes check the token at each suspension point instead of relying on task
cancellation, so a deep scan can stop and still hand back what it found.
"""

import asyncio
from typing import Awaitable, Iterable, TypeVar

from ..core.exceptions import ScanCancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation flag shared by all tasks of a scan."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        # Must be called from the event loop thread
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelled()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the token fires first, in which case it is cancelled."""
        self.raise_if_cancelled()

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task.done():
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise ScanCancelled()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds or until cancelled."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise ScanCancelled()


async def gather_cancelling(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Like ``asyncio.gather`` but cancels the remaining tasks on the first failure."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
