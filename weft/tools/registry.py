"""Tool registry and ``define_tool`` helper."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import BaseModel

from weft.types import LocalFunctionTool, Tool


def define_tool(
    name: str,
    body: str,
    parameters: type[BaseModel] | dict[str, Any] | None = None,
    description: str = "",
) -> LocalFunctionTool:
    """Build a sandboxed function tool; ``parameters`` may be a pydantic model or a JSON schema."""
    if isinstance(parameters, type) and issubclass(parameters, BaseModel):
        schema = parameters.model_json_schema()
        description = description or (parameters.__doc__ or "").strip()
    else:
        schema = dict(parameters or {"type": "object", "properties": {}})
    return LocalFunctionTool(name=name, body=body, parameters_schema=schema, description=description)


class ToolRegistry:
    """Name-to-tool map resolved once per loop invocation."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Duplicate tool name '{tool.name}'")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list(self) -> list[Tool]:
        return list(self._tools.values())

    def select(self, names: Iterable[str]) -> ToolRegistry:
        """Sub-registry holding the named tools that exist here, in the given order."""
        return ToolRegistry(self._tools[n] for n in dict.fromkeys(names) if n in self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        return [t.to_function_schema() for t in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    @classmethod
    def coerce(cls, tools: ToolRegistry | Iterable[Tool] | None) -> ToolRegistry:
        if isinstance(tools, ToolRegistry):
            return tools
        return cls(tools or ())
