"""Settle-all batch execution used for resource downloads and link recursion."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from .cancel import CancelToken, MirrorCancelled

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class Outcome(Generic[T, R]):
    """Result of one batch member: a value or the error it raised."""

    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batch_size: int,
    pause: float = 0.0,
    token: Optional[CancelToken] = None,
) -> List[Outcome[T, R]]:
    """Run *worker* over *items* in fixed-size batches.

    Every member of a batch is awaited before the next batch starts, and one
    member's failure never affects its siblings. Cancellation is the exception:
    if a member raised :class:`MirrorCancelled` (or the token fired), it is
    re-raised once the batch has settled.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    outcomes: List[Outcome[T, R]] = []
    for start in range(0, len(items), batch_size):
        if token is not None:
            token.raise_if_cancelled()

        batch = list(items[start : start + batch_size])
        results = await asyncio.gather(
            *(worker(item) for item in batch), return_exceptions=True
        )

        cancelled: Optional[BaseException] = None
        for item, result in zip(batch, results):
            if isinstance(result, BaseException):
                if isinstance(result, (MirrorCancelled, asyncio.CancelledError)):
                    cancelled = cancelled or result
                outcomes.append(Outcome(item=item, error=result))
            else:
                outcomes.append(Outcome(item=item, value=result))
        if cancelled is not None:
            raise cancelled

        if pause > 0 and start + batch_size < len(items):
            if token is not None:
                await token.sleep(pause)
            else:
                await asyncio.sleep(pause)

    return outcomes
