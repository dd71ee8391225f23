"""Cooperative cancellation for relay turns.

A CancelToken is shared between the caller and every suspension point of a
turn. Sleeps and in-flight awaits race against the token, so cancelling
interrupts them immediately instead of waiting for the next loop check.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from typing import TypeVar

from taskrelay.errors import Cancelled

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation signal backed by an asyncio.Event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, raising Cancelled as soon as the token fires."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise Cancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it if the token fires first."""
        if self._event.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise Cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
        if work in done:
            return work.result()
        raise Cancelled()
