"""Batched embedding over pluggable embedding providers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

from weft.errors import WeftError
from weft.infra.logging import get_logger
from weft.types import EmbeddingProvider
from weft.utils.abort import race_abort, raise_if_aborted

logger = get_logger(__name__)


class EmbeddingEngine:
    """Routes embedding requests to the provider registered under ``provider_id``.

    Providers are injected at construction; there is no shared module state.
    """

    def __init__(
        self, providers: Mapping[str, EmbeddingProvider], batch_size: int = 20
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._providers = dict(providers)
        self.batch_size = batch_size

    def provider(self, provider_id: str) -> EmbeddingProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise WeftError("EMBEDDING_PROVIDER_NOT_FOUND", f"Embedding provider '{provider_id}' not found")
        return provider

    async def embed(
        self,
        texts: list[str],
        model_id: str,
        provider_id: str,
        signal: asyncio.Event | None = None,
        on_batch: Callable[[int, int], None] | None = None,
    ) -> list[list[float]]:
        provider = self.provider(provider_id)
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            raise_if_aborted(signal)
            batch = texts[start:start + self.batch_size]
            result = await race_abort(provider.embed(batch, model_id), signal)
            if len(result) != len(batch):
                raise WeftError(
                    "EMBEDDING_COUNT_MISMATCH",
                    f"Provider '{provider_id}' returned {len(result)} embeddings for {len(batch)} texts",
                )
            vectors.extend(list(map(float, v)) for v in result)
            logger.debug("embedding_batch", provider=provider_id, model=model_id, done=len(vectors), total=len(texts))
            if on_batch is not None:
                on_batch(len(vectors), len(texts))
        return vectors

    async def embed_query(
        self, query: str, model_id: str, provider_id: str, signal: asyncio.Event | None = None
    ) -> list[float]:
        vectors = await self.embed([query], model_id, provider_id, signal)
        return vectors[0]
