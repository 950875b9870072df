"""
Runtime Configuration

Limits and defaults for the conversational loop, the sandbox and the RAG pipeline.
Instances are passed explicitly into the components that use them.
"""

from __future__ import annotations

import json
import os
from typing import Any

from pydantic import Field, model_validator

from weft.config.base import WeftBaseConfig
from weft.config.models import ModelConfig


class LoopConfig(WeftBaseConfig):
    max_iterations: int = Field(5, ge=1, le=1000, description="Model calls allowed per run")
    time_limit_ms: int = Field(
        60000, ge=1, description="Per tool call time limit in milliseconds"
    )
    max_agent_depth: int = Field(
        3, ge=0, le=32, description="Maximum nesting of agent-as-tool invocations"
    )


class SandboxConfig(WeftBaseConfig):
    timeout_ms: int = Field(5000, ge=1, description="Default execution timeout")
    max_timeout_ms: int = Field(
        60000, ge=1, description="Hard cap applied regardless of the requested timeout"
    )
    allowed_modules: list[str] = Field(
        default_factory=lambda: ["math", "json", "datetime", "re"],
        description="Modules user code may import",
    )


class ChunkConfig(WeftBaseConfig):
    chunk_size: int = Field(500, ge=1, description="Maximum characters per chunk")
    chunk_overlap: int = Field(100, ge=0, description="Characters shared by adjacent chunks")
    separator: str = Field("\n\n", description="Preferred break point")
    fallback_separators: list[str] = Field(
        default_factory=lambda: ["\n", ". ", " "],
        description="Break points tried when the preferred one is absent",
    )

    @model_validator(mode="after")
    def _check_overlap(self) -> ChunkConfig:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


class RAGConfig(WeftBaseConfig):
    top_k: int = Field(5, ge=1, description="Maximum retrieved chunks")
    min_similarity: float = Field(0.3, ge=-1.0, le=1.0, description="Cosine similarity floor")
    batch_size: int = Field(20, ge=1, description="Texts per embedding request")
    max_context_length: int = Field(
        10000, ge=0, description="Character budget of the rendered context block"
    )


class WeftConfig(WeftBaseConfig):
    loop: LoopConfig = Field(default_factory=LoopConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    chunking: ChunkConfig = Field(default_factory=ChunkConfig)
    rag: RAGConfig = Field(default_factory=RAGConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, prefix: str = "WEFT_") -> WeftConfig:
        """Build a config from ``WEFT_<SECTION>__<FIELD>`` variables.

        List values are given as JSON arrays; everything else is left to pydantic coercion.
        """
        environ = os.environ if environ is None else environ
        sections: dict[str, dict[str, Any]] = {}
        for key, raw in environ.items():
            if not key.startswith(prefix) or "__" not in key:
                continue
            section, _, name = key[len(prefix):].lower().partition("__")
            if section not in cls.model_fields:
                continue
            value: Any = raw
            if raw.startswith("["):
                value = json.loads(raw)
            sections.setdefault(section, {})[name] = value
        return cls(**sections)
