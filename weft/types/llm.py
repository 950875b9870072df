"""Model provider port."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .messages import Message


@dataclass
class ToolCallDelta:
    """Fragment of a tool call addressed by its slot ``index``."""

    index: int
    id: str | None = None
    function_name_delta: str | None = None
    function_arguments_delta: str | None = None


@dataclass
class StreamDelta:
    content_delta: str | None = None
    tool_call_delta: ToolCallDelta | None = None


@dataclass
class ChatParams:
    messages: list[Message]
    system_prompt: str = ""
    tools: list[dict[str, Any]] = field(default_factory=list)  # function schemas
    json_schema: dict[str, Any] | None = None
    json_strict: bool = False
    model: str | None = None
    signal: asyncio.Event | None = None


@runtime_checkable
class ModelProvider(Protocol):
    async def complete(self, params: ChatParams) -> Message: ...
    def stream(self, params: ChatParams) -> AsyncGenerator[StreamDelta, None]: ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]: ...
