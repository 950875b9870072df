"""Tool variants visible to one loop invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable


class ToolKind(StrEnum):
    LOCAL_FUNCTION = "local_function"
    REMOTE_MCP = "remote_mcp"
    AGENT = "agent"


def _object_schema(schema: dict[str, Any] | None) -> dict[str, Any]:
    schema = dict(schema or {})
    return {
        "type": "object",
        "properties": schema.get("properties", {}),
        "required": schema.get("required", []),
    }


@dataclass
class LocalFunctionTool:
    """User-authored Python function body executed in the sandbox."""

    name: str
    body: str
    parameters_schema: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    kind: ToolKind = field(default=ToolKind.LOCAL_FUNCTION, init=False)

    def to_function_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": _object_schema(self.parameters_schema),
        }


@dataclass
class RemoteMcpTool:
    server_id: str
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)
    kind: ToolKind = field(default=ToolKind.REMOTE_MCP, init=False)

    def to_function_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description or f"MCP tool {self.name} ({self.server_id})",
            "parameters": _object_schema(self.input_schema),
        }


@dataclass
class AgentSpec:
    id: str
    name: str
    instructions: str = ""
    selected_tools: list[str] = field(default_factory=list)
    max_iterations: int = 5
    json_schema: dict[str, Any] | None = None
    json_strict: bool = False
    model: str | None = None
    description: str | None = None


@dataclass
class AgentTool:
    """Nested agent exposed to the model as a tool taking one ``request`` string."""

    agent: AgentSpec
    kind: ToolKind = field(default=ToolKind.AGENT, init=False)

    @property
    def name(self) -> str:
        return self.agent.name

    def to_function_schema(self) -> dict[str, Any]:
        return {
            "name": self.agent.name,
            "description": self.agent.description
            or self.agent.instructions
            or f"Agent: {self.agent.name}",
            "parameters": {
                "type": "object",
                "properties": {
                    "request": {
                        "type": "string",
                        "description": "The request or task for the agent to handle",
                    }
                },
                "required": ["request"],
            },
        }


Tool = LocalFunctionTool | RemoteMcpTool | AgentTool


@dataclass
class McpCallResult:
    success: bool
    result: Any = None
    error: str | None = None


@runtime_checkable
class McpTransport(Protocol):
    async def call_tool(
        self, server_id: str, name: str, arguments: dict[str, Any], time_limit_ms: int
    ) -> McpCallResult: ...
