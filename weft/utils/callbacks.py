"""Fire-and-forget callback dispatch.

Callbacks never break the caller: exceptions are logged, and awaitable return
values are scheduled as tasks that are kept referenced until they finish.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from weft.infra.logging import get_logger

logger = get_logger(__name__)


class CallbackDispatcher:
    def __init__(self) -> None:
        self._pending: set[asyncio.Future] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def __call__(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
        except Exception:
            logger.exception("callback_error", callback=getattr(callback, "__name__", repr(callback)))
            return
        if inspect.isawaitable(result):
            fut = asyncio.ensure_future(result)
            self._pending.add(fut)
            fut.add_done_callback(self._on_done)

    async def drain(self) -> None:
        """Wait for every scheduled callback; their errors are already logged."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _on_done(self, fut: asyncio.Future) -> None:
        self._pending.discard(fut)
        if not fut.cancelled() and fut.exception() is not None:
            logger.error("callback_error", error=str(fut.exception()))
