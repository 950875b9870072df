"""Chunkers: split knowledge files into overlapping chunks."""

from __future__ import annotations

from dataclasses import dataclass

from weft.config import ChunkConfig
from weft.types import Chunk, KnowledgeBase, KnowledgeFile


@dataclass
class TextSpan:
    text: str
    index: int
    start: int
    end: int


class OverlapChunker:
    """Fixed-size windows that prefer to break after a separator.

    The break point is the last occurrence of the first separator (in preference
    order) found in the second half of the window. Adjacent chunks share
    ``chunk_overlap`` characters.
    """

    def __init__(self, config: ChunkConfig | None = None) -> None:
        self.config = config or ChunkConfig()

    def split(self, text: str) -> list[TextSpan]:
        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        if not text:
            return []
        if len(text) <= size:
            stripped = text.strip()
            return [TextSpan(stripped, 0, 0, len(text))] if stripped else []

        separators = [self.config.separator, *self.config.fallback_separators]
        spans: list[TextSpan] = []
        pos = 0
        while pos < len(text):
            end = min(pos + size, len(text))
            if end < len(text):
                search_start = pos + size // 2
                for sep in separators:
                    found = text.rfind(sep, search_start, end)
                    if found != -1:
                        if found + len(sep) > pos:
                            end = found + len(sep)
                        break

            piece = text[pos:end].strip()
            if piece:
                spans.append(TextSpan(piece, len(spans), pos, end))
            if end >= len(text):
                break

            next_pos = end - overlap
            last_start = spans[-1].start if spans else -1
            pos = end if next_pos <= last_start else next_pos
        return spans

    def chunk_file(self, file: KnowledgeFile) -> list[Chunk]:
        return [
            Chunk(
                file_id=file.id,
                index=span.index,
                text=span.text,
                file_name=file.name,
                start=span.start,
                end=span.end,
            )
            for span in self.split(file.content)
        ]

    def chunk_knowledge_base(self, kb: KnowledgeBase) -> list[Chunk]:
        chunks: list[Chunk] = []
        for file in kb.files:
            chunks.extend(self.chunk_file(file))
        return chunks
