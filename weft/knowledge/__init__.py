"""Knowledge: chunking, embedding, indexing and retrieval."""

from .chunkers import OverlapChunker, TextSpan
from .embedding import EmbeddingEngine
from .indexer import RAGIndexer
from .retriever import (
    RAGAugmentation,
    RAGRetriever,
    cosine_similarities,
    format_context_for_llm,
    format_context_message,
)

__all__ = [
    "OverlapChunker", "TextSpan", "EmbeddingEngine", "RAGIndexer",
    "RAGAugmentation", "RAGRetriever", "cosine_similarities",
    "format_context_for_llm", "format_context_message",
]
