"""
RAG Retriever

Cosine-similarity search over indexed knowledge bases, plus the pure formatting
helpers that turn retrieved chunks into augmented user content.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from weft.config import RAGConfig
from weft.errors import AbortedError
from weft.infra.logging import get_logger
from weft.knowledge.embedding import EmbeddingEngine
from weft.types import KnowledgeBase, RetrievalResult

logger = get_logger(__name__)


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosine similarity of ``query`` against each row; zero-norm rows score 0."""
    if len(vectors) == 0:
        return np.zeros(0, dtype=float)
    q = np.asarray(query, dtype=float)
    m = np.asarray(vectors, dtype=float)
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return sims


def search_knowledge_base(
    query_embedding: Sequence[float],
    kb: KnowledgeBase,
    top_k: int,
    min_similarity: float,
) -> list[RetrievalResult]:
    if not kb.is_indexed or kb.vectors is None:
        return []
    dim = len(query_embedding)
    candidates = [c for c in kb.vectors.chunks if len(c.embedding) == dim]
    if len(candidates) < len(kb.vectors.chunks):
        logger.warning(
            "embedding_dimension_mismatch",
            knowledge_base=kb.id,
            skipped=len(kb.vectors.chunks) - len(candidates),
        )
    sims = cosine_similarities(query_embedding, [c.embedding for c in candidates])
    results = [
        RetrievalResult(chunk=c, score=float(s), knowledge_base_id=kb.id, knowledge_base_name=kb.name)
        for c, s in zip(candidates, sims)
        if s >= min_similarity
    ]
    results.sort(key=lambda r: r.score, reverse=True)
    return results[:top_k]


def format_context_for_llm(
    results: Sequence[RetrievalResult],
    include_source: bool = True,
    include_score: bool = False,
    max_length: int = 10000,
) -> str:
    context = ""
    for r in results:
        header = ""
        if include_source:
            header = f"[Source: {r.chunk.file_name}"
            if r.knowledge_base_name:
                header += f" | KB: {r.knowledge_base_name}"
            if include_score:
                header += f" | Score: {r.score:.3f}"
            header += "]\n"
        block = header + r.chunk.text + "\n\n"

        if len(context) + len(block) > max_length:
            remaining = max_length - len(context)
            if remaining > 100:
                context += block[:remaining] + "..."
            break
        context += block
    return context.strip()


def format_context_message(
    results: Sequence[RetrievalResult], result_count: int, original_query: str
) -> str:
    context = format_context_for_llm(results)
    return (
        f"[Context from knowledge bases ({result_count} results)]\n"
        f"{context}\n\n"
        f"[User Query]\n"
        f"{original_query}"
    )


class RAGRetriever:
    def __init__(self, embeddings: EmbeddingEngine, config: RAGConfig | None = None) -> None:
        self.embeddings = embeddings
        self.config = config or RAGConfig()

    async def retrieve(
        self,
        query: str,
        kb: KnowledgeBase,
        model_id: str,
        provider_id: str,
        *,
        top_k: int | None = None,
        min_similarity: float | None = None,
        signal: asyncio.Event | None = None,
    ) -> list[RetrievalResult]:
        """Top-K chunks of one knowledge base, most similar first, never below the floor."""
        return await self.retrieve_context(
            query, [kb], model_id, provider_id,
            top_k=top_k, min_similarity=min_similarity, signal=signal,
        )

    async def retrieve_context(
        self,
        query: str,
        knowledge_bases: Sequence[KnowledgeBase],
        model_id: str,
        provider_id: str,
        *,
        top_k: int | None = None,
        min_similarity: float | None = None,
        signal: asyncio.Event | None = None,
    ) -> list[RetrievalResult]:
        top_k = self.config.top_k if top_k is None else top_k
        floor = self.config.min_similarity if min_similarity is None else min_similarity

        searchable = []
        for kb in knowledge_bases:
            if not kb.is_indexed or kb.vectors is None:
                logger.info("skipping_unindexed_knowledge_base", knowledge_base=kb.id)
                continue
            if kb.vectors.model_id != model_id:
                logger.warning(
                    "embedding_model_mismatch",
                    knowledge_base=kb.id,
                    indexed_with=kb.vectors.model_id,
                    requested=model_id,
                )
                continue
            searchable.append(kb)
        if not searchable or top_k <= 0:
            return []

        query_embedding = await self.embeddings.embed_query(query, model_id, provider_id, signal)
        merged: list[RetrievalResult] = []
        for kb in searchable:
            merged.extend(search_knowledge_base(query_embedding, kb, top_k, floor))
        merged.sort(key=lambda r: r.score, reverse=True)
        return merged[:top_k]

    async def augment(
        self,
        query: str,
        knowledge_bases: Sequence[KnowledgeBase],
        model_id: str,
        provider_id: str,
        *,
        top_k: int | None = None,
        min_similarity: float | None = None,
        signal: asyncio.Event | None = None,
    ) -> str:
        """Query wrapped with retrieved context, or the query unchanged when nothing applies."""
        try:
            results = await self.retrieve_context(
                query, knowledge_bases, model_id, provider_id,
                top_k=top_k, min_similarity=min_similarity, signal=signal,
            )
        except AbortedError:
            raise
        except Exception as e:
            logger.warning("rag_retrieval_failed", error=str(e))
            return query
        if not results:
            return query
        return format_context_message(results, len(results), query)


@dataclass
class RAGAugmentation:
    """Knowledge bases used to augment the user turn of a loop run."""

    retriever: RAGRetriever
    knowledge_bases: list[KnowledgeBase] = field(default_factory=list)
    model_id: str = ""
    provider_id: str = ""
    top_k: int | None = None
    min_similarity: float | None = None

    async def apply(self, query: str, signal: asyncio.Event | None = None) -> str:
        if not self.knowledge_bases:
            return query
        return await self.retriever.augment(
            query, self.knowledge_bases, self.model_id, self.provider_id,
            top_k=self.top_k, min_similarity=self.min_similarity, signal=signal,
        )
