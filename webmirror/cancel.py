"""Cooperative cancellation shared by every fetch of a mirror run."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class MirrorCancelled(Exception):
    """Raised once the run's cancel token has been triggered."""

    def __init__(self, message: str = "Download cancelled"):
        super().__init__(message)


class AttemptTimeout(Exception):
    """Raised by :meth:`CancelToken.run` when an attempt exceeds its timeout."""

    def __init__(self, message: str = "Request timed out"):
        super().__init__(message)


class CancelToken:
    """Single cancellation signal observed by all outstanding work.

    ``cancel()`` is idempotent. Work awaited through :meth:`run` or
    :meth:`sleep` is interrupted promptly; new work checks
    :meth:`raise_if_cancelled` before it is dispatched.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Download cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise MirrorCancelled(self.reason or "Download cancelled")

    async def sleep(self, delay: float) -> None:
        """Sleep for *delay* seconds unless cancelled first."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await *awaitable*, aborting it on cancellation or after *timeout*.

        Raises:
            MirrorCancelled: the token fired while the attempt was in flight.
            AttemptTimeout: the attempt did not finish within *timeout* seconds.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_result)
        self.raise_if_cancelled()
        raise AttemptTimeout()


def _discard_result(task: "asyncio.Future[object]") -> None:
    if not task.cancelled():
        task.exception()
