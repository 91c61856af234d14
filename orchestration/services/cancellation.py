"""Cooperative cancellation shared between the client, the transport and a stream."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from ..errors import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Signal that in-flight work should be abandoned.

    Cancelling is idempotent and never blocks; consumers observe it at their next
    await through `run_cancellable` or by checking `cancelled`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.debug("Cancellation requested: %s", reason or "no reason given")

    async def wait(self) -> None:
        await self._event.wait()


async def run_cancellable(token: Optional[CancellationToken], awaitable: Awaitable[T]) -> T:
    """Await `awaitable`, abandoning it as soon as `token` is cancelled.

    Raises OperationCancelledError when the token wins the race. The abandoned
    work is cancelled and awaited so it does not leak.
    """

    if token is None:
        return await awaitable

    work = asyncio.ensure_future(awaitable)
    if token.cancelled:
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise OperationCancelledError(token.reason or "operation cancelled")

    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        waiter.cancel()
        raise

    if work in done:
        waiter.cancel()
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise OperationCancelledError(token.reason or "operation cancelled")
