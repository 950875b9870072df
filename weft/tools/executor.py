"""
Tool Executor

Resolves a model tool call to its backend (sandboxed local function, remote MCP
tool or nested agent) and always answers with a ``tool`` message. Failures are
rendered into the message content so the model can react on its next turn; only
an abort escapes as ``AbortedError``.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from weft.errors import AbortedError, AgentDepthError
from weft.infra.logging import get_logger
from weft.tools.registry import ToolRegistry
from weft.tools.sandbox import Sandbox
from weft.types import (
    AgentSpec,
    AgentTool,
    LocalFunctionTool,
    LoopEvent,
    LoopResult,
    McpTransport,
    Message,
    RemoteMcpTool,
    Role,
    ToolCall,
)
from weft.utils.abort import race_abort, raise_if_aborted

logger = get_logger(__name__)

EventSink = Callable[[LoopEvent], None]
AgentRunner = Callable[
    [AgentSpec, str, ToolRegistry, "asyncio.Event | None", int, "EventSink | None"],
    Awaitable[LoopResult],
]

NO_AGENT_OUTPUT = "Agent completed with no output"


def error_content(message: str) -> str:
    return f"Error: {message}"


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Empty arguments mean ``{}``; anything else must be a JSON object."""
    if raw is None or not raw.strip():
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def extract_request(raw: str | None) -> str:
    """Pull the request text for an agent tool out of its raw arguments."""
    if raw is None:
        return ""
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return raw
    if isinstance(parsed, dict):
        if "request" in parsed:
            value = parsed["request"]
            return value if isinstance(value, str) else json.dumps(value)
        values = list(parsed.values())
        if len(values) == 1 and isinstance(values[0], str):
            return values[0]
        return json.dumps(parsed)
    if isinstance(parsed, str):
        return parsed
    return raw


def render_result(result: Any) -> str:
    return result if isinstance(result, str) else json.dumps(result)


def last_assistant_content(messages: list[Message]) -> str | None:
    for message in reversed(messages):
        if message.role == Role.ASSISTANT and message.content:
            return message.content
    return None


class ToolExecutor:
    def __init__(
        self,
        sandbox: Sandbox | None = None,
        mcp: McpTransport | None = None,
        agent_runner: AgentRunner | None = None,
        env: Mapping[str, Any] | None = None,
        max_agent_depth: int = 3,
    ) -> None:
        self.sandbox = sandbox or Sandbox()
        self.mcp = mcp
        self.agent_runner = agent_runner
        self.env = dict(env or {})
        self.max_agent_depth = max_agent_depth

    async def execute(
        self,
        tool_call: ToolCall,
        tools: ToolRegistry,
        time_limit_ms: int,
        *,
        signal: asyncio.Event | None = None,
        depth: int = 0,
        emit: EventSink | None = None,
        catalogue: ToolRegistry | None = None,
    ) -> Message:
        name = tool_call.function.name
        started = time.monotonic()
        try:
            content = await self._dispatch(
                tool_call, tools, time_limit_ms, signal, depth, emit, catalogue or tools
            )
        except AbortedError:
            raise
        except Exception as e:
            logger.exception("tool_execution_error", tool=name)
            content = f"Error executing tool: {e}"
        logger.debug(
            "tool_executed",
            tool=name,
            tool_call_id=tool_call.id,
            duration_ms=int((time.monotonic() - started) * 1000),
            failed=content.startswith("Error"),
        )
        return Message.tool(tool_call.id, content, name=name)

    async def _dispatch(
        self,
        tool_call: ToolCall,
        tools: ToolRegistry,
        time_limit_ms: int,
        signal: asyncio.Event | None,
        depth: int,
        emit: EventSink | None,
        catalogue: ToolRegistry,
    ) -> str:
        name = tool_call.function.name
        tool = tools.get(name)
        if tool is None:
            return error_content(f"Tool '{name}' not found")
        raise_if_aborted(signal)

        if isinstance(tool, AgentTool):
            return await self._run_agent(tool, tool_call, catalogue, signal, depth, emit)

        try:
            args = parse_arguments(tool_call.function.arguments)
        except ValueError as e:
            return error_content(f"Invalid JSON arguments for tool '{name}': {e}")

        if isinstance(tool, LocalFunctionTool):
            return await self._run_local(tool, args, time_limit_ms, signal)
        if isinstance(tool, RemoteMcpTool):
            return await self._run_mcp(tool, args, time_limit_ms, signal)
        return error_content(f"Tool '{name}' has unsupported kind")

    async def _run_local(
        self,
        tool: LocalFunctionTool,
        args: dict[str, Any],
        time_limit_ms: int,
        signal: asyncio.Event | None,
    ) -> str:
        if not tool.body or not tool.body.strip():
            return error_content(f"Tool '{tool.name}' has no valid function implementation")
        result = await race_abort(
            self.sandbox.execute(tool.body, args, timeout_ms=time_limit_ms, env=dict(self.env)),
            signal,
        )
        if not result.success:
            return error_content(result.error or "unknown error")
        return render_result(result.result)

    async def _run_mcp(
        self,
        tool: RemoteMcpTool,
        args: dict[str, Any],
        time_limit_ms: int,
        signal: asyncio.Event | None,
    ) -> str:
        if self.mcp is None:
            return error_content(f"No MCP transport configured for server '{tool.server_id}'")
        try:
            result = await race_abort(
                self.mcp.call_tool(tool.server_id, tool.name, args, time_limit_ms),
                signal,
                # transport gets a little slack to report its own timeout first
                timeout=time_limit_ms / 1000 + 1,
            )
        except asyncio.TimeoutError:
            return error_content("Tool execution timeout")
        if not result.success:
            return error_content(result.error or "MCP tool failed")
        return render_result(result.result)

    async def _run_agent(
        self,
        tool: AgentTool,
        tool_call: ToolCall,
        catalogue: ToolRegistry,
        signal: asyncio.Event | None,
        depth: int,
        emit: EventSink | None,
    ) -> str:
        agent = tool.agent
        if self.agent_runner is None:
            return error_content(f"Agent '{agent.name}' cannot run without a loop")
        if depth + 1 > self.max_agent_depth:
            err = AgentDepthError(agent.name, self.max_agent_depth)
            logger.warning("agent_depth_exceeded", agent=agent.name, depth=depth)
            return error_content(err.message)

        request = extract_request(tool_call.function.arguments)
        result = await self.agent_runner(agent, request, catalogue, signal, depth + 1, emit)
        raise_if_aborted(signal)
        if not result.success:
            return error_content(f"Agent execution failed - {result.error}")
        return last_assistant_content(result.messages) or NO_AGENT_OUTPUT
