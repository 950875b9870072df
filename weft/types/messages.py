"""Message types exchanged between the loop and model providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    CONTROL = "control"


@dataclass
class FunctionCall:
    name: str = ""
    arguments: str = ""  # JSON-encoded


@dataclass
class ToolCall:
    id: str
    function: FunctionCall = field(default_factory=FunctionCall)
    type: str = "function"

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        fn = data.get("function") or {}
        return cls(
            id=data.get("id", ""),
            function=FunctionCall(fn.get("name", ""), fn.get("arguments", "") or ""),
            type=data.get("type", "function"),
        )


@dataclass
class ImageAttachment:
    data_url: str
    mime_type: str = "image/png"


@dataclass
class Message:
    """One entry of a conversation history.

    A ``tool`` message carries the ``tool_call_id`` of the assistant tool call it
    answers. An ``assistant`` message with tool calls may have ``content=None``.
    """

    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    images: list[ImageAttachment] = field(default_factory=list)
    name: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str, images: list[ImageAttachment] | None = None) -> Message:
        return cls(Role.USER, content, images=list(images or []))

    @classmethod
    def assistant(cls, content: str | None, tool_calls: list[ToolCall] | None = None) -> Message:
        return cls(Role.ASSISTANT, content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, content: str, name: str | None = None) -> Message:
        return cls(Role.TOOL, content, tool_call_id=tool_call_id, name=name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.images:
            data["images"] = [{"data_url": i.data_url, "mime_type": i.mime_type} for i in self.images]
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            role=Role(data["role"]),
            content=data.get("content"),
            tool_calls=[ToolCall.from_dict(tc) for tc in data.get("tool_calls") or []],
            tool_call_id=data.get("tool_call_id"),
            images=[ImageAttachment(**i) for i in data.get("images") or []],
            name=data.get("name"),
        )
