"""
RAG Indexer

Chunks every file of a knowledge base and embeds the chunks. The result is a
complete ``VectorSet``; nothing is written to the knowledge base until the whole
run succeeds, so an abort or provider failure leaves the previous vectors intact.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from weft.config import ChunkConfig
from weft.errors import AbortedError, IndexingAbortedError, IndexingError, WeftError
from weft.infra.logging import get_logger
from weft.knowledge.chunkers import OverlapChunker
from weft.knowledge.embedding import EmbeddingEngine
from weft.types import Chunk, KnowledgeBase, VectorSet
from weft.utils.abort import is_aborted
from weft.utils.callbacks import CallbackDispatcher

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int, int], Any]

STAGE_CHUNKING = "chunking"
STAGE_EMBEDDING = "embedding"


class RAGIndexer:
    def __init__(
        self,
        embeddings: EmbeddingEngine,
        chunk_config: ChunkConfig | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.chunker = OverlapChunker(chunk_config)
        # async progress callbacks stay referenced here until they finish
        self.callbacks = CallbackDispatcher()

    async def index(
        self,
        kb: KnowledgeBase,
        model_id: str,
        provider_id: str,
        *,
        signal: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> VectorSet:
        """Build a fresh vector set for ``kb``.

        Raises ``IndexingAbortedError`` on abort and ``IndexingError`` on any other failure.
        """
        try:
            chunks = self._chunk(kb, signal, on_progress)
            vectors = await self.embeddings.embed(
                [c.text for c in chunks],
                model_id,
                provider_id,
                signal=signal,
                on_batch=lambda done, total: self.callbacks(on_progress, STAGE_EMBEDDING, done, total),
            )
        except AbortedError as e:
            logger.info("indexing_aborted", knowledge_base=kb.id)
            raise IndexingAbortedError(kb.id) from e
        except WeftError as e:
            logger.warning("indexing_failed", knowledge_base=kb.id, error=e.message)
            raise IndexingError(kb.id, e.message, e) from e
        except Exception as e:
            logger.warning("indexing_failed", knowledge_base=kb.id, error=str(e))
            raise IndexingError(kb.id, f"Indexing failed: {e}", e) from e

        if is_aborted(signal):
            raise IndexingAbortedError(kb.id)

        embedded = [
            Chunk(
                file_id=c.file_id,
                index=c.index,
                text=c.text,
                embedding=vector,
                file_name=c.file_name,
                start=c.start,
                end=c.end,
            )
            for c, vector in zip(chunks, vectors)
        ]
        logger.info("indexing_complete", knowledge_base=kb.id, chunks=len(embedded), model=model_id)
        return VectorSet(model_id=model_id, provider_id=provider_id, chunks=embedded)

    async def reindex(
        self,
        kb: KnowledgeBase,
        model_id: str,
        provider_id: str,
        *,
        signal: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> VectorSet:
        """Index and swap the new vector set into ``kb`` in one assignment."""
        vectors = await self.index(kb, model_id, provider_id, signal=signal, on_progress=on_progress)
        kb.replace_vectors(vectors)
        return vectors

    def _chunk(
        self,
        kb: KnowledgeBase,
        signal: asyncio.Event | None,
        on_progress: ProgressCallback | None,
    ) -> list[Chunk]:
        chunks: list[Chunk] = []
        total = len(kb.files)
        for i, file in enumerate(kb.files):
            if is_aborted(signal):
                raise AbortedError("Indexing aborted")
            chunks.extend(self.chunker.chunk_file(file))
            self.callbacks(on_progress, STAGE_CHUNKING, i + 1, total)
        return chunks

