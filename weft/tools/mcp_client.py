"""MCP stdio client and the transport the tool executor calls through."""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any

from weft import __version__
from weft.errors import ToolError, ToolTimeoutError
from weft.infra.logging import get_logger
from weft.types import McpCallResult, RemoteMcpTool

logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"


@dataclass
class McpServerConfig:
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None
    connect_timeout_ms: int = 10000


class McpClient:
    """JSON-RPC 2.0 over a server subprocess's stdin/stdout."""

    def __init__(self, config: McpServerConfig) -> None:
        self.config = config
        self._proc: asyncio.subprocess.Process | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._reader_task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def connect(self, timeout_ms: int | None = None) -> None:
        self._proc = await asyncio.create_subprocess_exec(
            self.config.command, *self.config.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            env=self.config.env,
        )
        self._reader_task = asyncio.create_task(self._read_loop())
        await self._rpc("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "weft", "version": __version__},
        }, timeout_ms or self.config.connect_timeout_ms)
        await self._notify("notifications/initialized")

    async def list_tools(self, timeout_ms: int | None = None) -> list[dict[str, Any]]:
        res = await self._rpc("tools/list", {}, timeout_ms or self.config.connect_timeout_ms)
        return list(res.get("tools", []))

    async def call_tool(self, name: str, args: dict[str, Any], timeout_ms: int) -> Any:
        """Return the ``content`` of a tool result; ``isError`` results raise ``ToolError``."""
        res = await self._rpc("tools/call", {"name": name, "arguments": args}, timeout_ms)
        content = res.get("content", [])
        if res.get("isError"):
            text = _join_text(content) if isinstance(content, list) else ""
            raise ToolError("MCP_TOOL_ERROR", name, text or "MCP tool error")
        return content

    async def disconnect(self) -> None:
        if self._reader_task:
            self._reader_task.cancel()
            await asyncio.gather(self._reader_task, return_exceptions=True)
        if self._proc:
            if self._proc.returncode is None:
                self._proc.kill()
            await self._proc.wait()
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(ConnectionError("MCP connection closed"))
        self._pending.clear()
        self._proc = None
        self._reader_task = None

    async def _rpc(self, method: str, params: Any, timeout_ms: int) -> Any:
        if not self._proc or not self._proc.stdin:
            raise ConnectionError("MCP client not connected")
        rid = uuid.uuid4().hex[:12]
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[rid] = fut
        msg = json.dumps({"jsonrpc": "2.0", "id": rid, "method": method, "params": params}) + "\n"
        self._proc.stdin.write(msg.encode())
        await self._proc.stdin.drain()
        try:
            return await asyncio.wait_for(fut, timeout=timeout_ms / 1000)
        finally:
            self._pending.pop(rid, None)

    async def _notify(self, method: str) -> None:
        if not self._proc or not self._proc.stdin:
            return
        msg = json.dumps({"jsonrpc": "2.0", "method": method}) + "\n"
        self._proc.stdin.write(msg.encode())
        await self._proc.stdin.drain()

    async def _read_loop(self) -> None:
        assert self._proc and self._proc.stdout
        while True:
            line = await self._proc.stdout.readline()
            if not line:
                break
            try:
                msg = json.loads(line)
            except json.JSONDecodeError:
                continue
            rid = msg.get("id")
            fut = self._pending.get(rid) if rid else None
            if fut is None or fut.done():
                continue
            if msg.get("error"):
                fut.set_exception(RuntimeError(msg["error"].get("message", "RPC error")))
            else:
                fut.set_result(msg.get("result", {}))
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(ConnectionError("MCP server closed the connection"))


def _join_text(content: list[Any]) -> str:
    return "\n".join(
        c.get("text", "") for c in content if isinstance(c, dict) and c.get("type") == "text"
    )


def format_mcp_content(content: Any) -> Any:
    """Text parts joined by newlines; content without text is returned as JSON text."""
    if isinstance(content, list) and any(
        isinstance(c, dict) and c.get("type") == "text" for c in content
    ):
        return _join_text(content)
    return json.dumps(content)


class StdioMcpTransport:
    """MCP transport port over stdio servers, one connection per call."""

    def __init__(self, servers: dict[str, McpServerConfig]) -> None:
        self._servers = dict(servers)

    def _client(self, server_id: str) -> McpClient:
        config = self._servers.get(server_id)
        if config is None:
            raise ToolError("MCP_UNKNOWN_SERVER", server_id, f"MCP server '{server_id}' not found")
        return McpClient(config)

    async def list_tools(self, server_id: str) -> list[RemoteMcpTool]:
        client = self._client(server_id)
        try:
            await client.connect()
            tools = await client.list_tools()
        finally:
            await client.disconnect()
        return [
            RemoteMcpTool(
                server_id=server_id,
                name=t["name"],
                description=t.get("description", ""),
                input_schema=t.get("inputSchema") or {"type": "object", "properties": {}},
            )
            for t in tools
        ]

    async def call_tool(
        self, server_id: str, name: str, arguments: dict[str, Any], time_limit_ms: int
    ) -> McpCallResult:
        try:
            client = self._client(server_id)
        except ToolError as e:
            return McpCallResult(False, error=e.message)
        try:
            await asyncio.wait_for(client.connect(time_limit_ms), timeout=time_limit_ms / 1000)
            content = await client.call_tool(name, arguments, time_limit_ms)
            return McpCallResult(True, result=format_mcp_content(content))
        except asyncio.TimeoutError:
            err = ToolTimeoutError(name, time_limit_ms)
            logger.warning("mcp_call_timeout", server_id=server_id, tool=name, timeout_ms=time_limit_ms)
            return McpCallResult(False, error=err.message)
        except Exception as e:
            logger.warning("mcp_call_failed", server_id=server_id, tool=name, error=str(e))
            return McpCallResult(False, error=str(e) or type(e).__name__)
        finally:
            await client.disconnect()
