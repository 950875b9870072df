"""Base model provider with retry and circuit breaker."""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import TypeVar

from weft.config import CircuitBreakerConfig, RetryConfig
from weft.errors import AbortedError, LLMError
from weft.infra.logging import get_logger
from weft.types import ChatParams, Message, StreamDelta

logger = get_logger(__name__)

T = TypeVar("T")


class BaseModelProvider:
    """Subclass and implement _do_complete/_do_stream/_do_embed.

    Non-streaming calls are retried; a stream is never replayed once it started.
    """

    name = "base"

    def __init__(
        self,
        retry: RetryConfig | None = None,
        circuit_breaker: CircuitBreakerConfig | None = None,
    ) -> None:
        self._retry = retry or RetryConfig()
        self._cb = circuit_breaker or CircuitBreakerConfig()
        self._failures = 0
        self._last_failure = 0.0

    async def complete(self, params: ChatParams) -> Message:
        self._check_circuit()
        return await self._with_retry(lambda: self._do_complete(params))

    async def stream(self, params: ChatParams) -> AsyncGenerator[StreamDelta, None]:
        self._check_circuit()
        try:
            async for delta in self._do_stream(params):
                yield delta
        except (AbortedError, asyncio.CancelledError):
            raise
        except Exception as e:
            self._record_failure()
            raise self._to_llm_error(e) from e
        self._failures = 0

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        if not texts:
            return []
        self._check_circuit()
        return await self._with_retry(lambda: self._do_embed(texts, model_id))

    # -- Override these --

    async def _do_complete(self, params: ChatParams) -> Message:
        raise NotImplementedError

    async def _do_stream(self, params: ChatParams) -> AsyncGenerator[StreamDelta, None]:
        raise NotImplementedError
        yield  # pragma: no cover

    async def _do_embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        raise NotImplementedError

    def _is_retryable(self, err: Exception) -> bool:
        return True

    def _to_llm_error(self, err: Exception) -> LLMError:
        if isinstance(err, LLMError):
            return err
        return LLMError("LLM_ERROR", self.name, str(err) or type(err).__name__, cause=err)

    # -- Internals --

    def _check_circuit(self) -> None:
        if self._failures >= self._cb.failure_threshold:
            if time.time() - self._last_failure < self._cb.reset_time:
                raise LLMError("LLM_CIRCUIT_OPEN", self.name, "Circuit breaker open")
            self._failures = 0

    def _record_failure(self) -> None:
        self._failures += 1
        self._last_failure = time.time()

    async def _with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        last_err: Exception | None = None
        for i in range(self._retry.max_retries + 1):
            try:
                result = await fn()
                self._failures = 0
                return result
            except AbortedError:
                raise
            except Exception as e:
                last_err = e
                self._record_failure()
                if i >= self._retry.max_retries or not self._is_retryable(e):
                    break
                delay = min(
                    self._retry.base_delay * (2 ** i) + random.random() * 0.1,
                    self._retry.max_delay,
                )
                logger.warning("provider_retry", provider=self.name, attempt=i + 1, delay=delay, error=str(e))
                await asyncio.sleep(delay)
        assert last_err is not None
        raise self._to_llm_error(last_err) from last_err
