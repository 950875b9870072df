"""Knowledge-base types."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class KnowledgeFile:
    id: str
    name: str
    content: str


@dataclass
class Chunk:
    file_id: str
    index: int  # position within the source file
    text: str
    embedding: list[float] = field(default_factory=list)
    file_name: str = ""
    start: int = 0
    end: int = 0


@dataclass
class VectorSet:
    model_id: str
    provider_id: str
    chunks: list[Chunk] = field(default_factory=list)
    indexed_at: float = field(default_factory=time.time)


@dataclass
class KnowledgeBase:
    id: str
    name: str = ""
    files: list[KnowledgeFile] = field(default_factory=list)
    vectors: VectorSet | None = None

    @property
    def is_indexed(self) -> bool:
        return self.vectors is not None and any(c.embedding for c in self.vectors.chunks)

    def replace_vectors(self, vectors: VectorSet | None) -> None:
        # single assignment: readers see the old set or the new one
        self.vectors = vectors

    def remove_file(self, file_id: str) -> None:
        self.files = [f for f in self.files if f.id != file_id]
        if self.vectors is not None:
            self.vectors = VectorSet(
                model_id=self.vectors.model_id,
                provider_id=self.vectors.provider_id,
                chunks=[c for c in self.vectors.chunks if c.file_id != file_id],
                indexed_at=self.vectors.indexed_at,
            )


@dataclass
class RetrievalResult:
    chunk: Chunk
    score: float
    knowledge_base_id: str = ""
    knowledge_base_name: str = ""
