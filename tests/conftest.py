"""
Pytest Configuration and Fixtures
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest

from weft.config import LoopConfig, SandboxConfig
from weft.tools import Sandbox, ToolExecutor
from weft.types import (
    ChatParams,
    FunctionCall,
    McpCallResult,
    Message,
    StreamDelta,
    ToolCall,
    ToolCallDelta,
)


def tool_call(id: str, name: str, arguments: Any = "") -> ToolCall:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ToolCall(id=id, function=FunctionCall(name, arguments))


class MockModelProvider:
    """Replays scripted assistant replies; an ``Exception`` entry is raised instead.

    ``delay`` holds every call open for that many seconds so abort paths can be tested.
    """

    def __init__(self, replies: list[Message | Exception] | None = None, delay: float = 0.0, repeat_last: bool = False) -> None:
        self.replies = list(replies or [])
        self.delay = delay
        self.repeat_last = repeat_last
        self.calls: list[ChatParams] = []

    def _next(self, params: ChatParams) -> Message:
        self.calls.append(params)
        if not self.replies:
            return Message.assistant("done")
        reply = self.replies[0] if self.repeat_last and len(self.replies) == 1 else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete(self, params: ChatParams) -> Message:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._next(params)

    async def stream(self, params: ChatParams) -> AsyncGenerator[StreamDelta, None]:
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self._next(params)
        text = reply.content or ""
        half = len(text) // 2
        for piece in (text[:half], text[half:]):
            if piece:
                yield StreamDelta(content_delta=piece)
        for i, tc in enumerate(reply.tool_calls):
            yield StreamDelta(tool_call_delta=ToolCallDelta(index=i, id=tc.id, function_name_delta=tc.function.name))
            args = tc.function.arguments
            for j in range(0, len(args), 4):
                yield StreamDelta(tool_call_delta=ToolCallDelta(index=i, function_arguments_delta=args[j:j + 4]))


class MockEmbeddingProvider:
    """Bag-of-words embeddings over a fixed vocabulary; texts without vocabulary words get a zero vector."""

    def __init__(self, vocabulary: list[str] | None = None, fail: bool = False, delay: float = 0.0) -> None:
        self.vocabulary = vocabulary or ["cat", "dog", "fish", "bird"]
        self.fail = fail
        self.delay = delay
        self.batches: list[list[str]] = []

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        self.batches.append(list(texts))
        return [[float(t.lower().split().count(w)) for w in self.vocabulary] for t in texts]


class MockMcpTransport:
    def __init__(self, results: dict[tuple[str, str], McpCallResult] | None = None, delay: float = 0.0) -> None:
        self.results = results or {}
        self.delay = delay
        self.calls: list[tuple[str, str, dict[str, Any], int]] = []

    async def call_tool(self, server_id: str, name: str, arguments: dict[str, Any], time_limit_ms: int) -> McpCallResult:
        self.calls.append((server_id, name, arguments, time_limit_ms))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.results.get((server_id, name), McpCallResult(False, error=f"unknown tool {name}"))


@pytest.fixture
def sandbox() -> Sandbox:
    return Sandbox(SandboxConfig(timeout_ms=5000, max_timeout_ms=10000))


@pytest.fixture
def mcp() -> MockMcpTransport:
    return MockMcpTransport()


@pytest.fixture
def executor(sandbox: Sandbox, mcp: MockMcpTransport) -> ToolExecutor:
    return ToolExecutor(sandbox=sandbox, mcp=mcp, env={"API_KEY": "secret"})


@pytest.fixture
def loop_config() -> LoopConfig:
    return LoopConfig(max_iterations=5, time_limit_ms=5000, max_agent_depth=3)
