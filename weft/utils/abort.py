"""Cooperative cancellation built on ``asyncio.Event``.

A set event means "aborted". One event is threaded through the whole call tree.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from weft.errors import AbortedError

T = TypeVar("T")


def is_aborted(signal: asyncio.Event | None) -> bool:
    return signal is not None and signal.is_set()


def raise_if_aborted(signal: asyncio.Event | None, message: str = "Operation aborted") -> None:
    if is_aborted(signal):
        raise AbortedError(message)


async def race_abort(
    aw: Awaitable[T],
    signal: asyncio.Event | None,
    timeout: float | None = None,
    message: str = "Operation aborted",
) -> T:
    """Await ``aw`` unless ``signal`` fires first.

    The work task is cancelled on abort (raising ``AbortedError``) and on timeout
    (raising ``asyncio.TimeoutError``).
    """
    if signal is None:
        if timeout is None:
            return await aw
        return await asyncio.wait_for(aw, timeout)
    raise_if_aborted(signal, message)

    work = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait(
            {work, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
        if work in done:
            return work.result()
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        if waiter in done:
            raise AbortedError(message)
        raise asyncio.TimeoutError()
    finally:
        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
        waiter.cancel()
