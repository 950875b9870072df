"""
Stream Aggregator

Merges streamed model deltas into one finished assistant message. Tool-call
fragments are addressed by slot index: an ``id`` replaces the slot id, name and
argument fragments are appended. Final ordering follows the index, not arrival.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from weft.types import FunctionCall, Message, Role, StreamDelta, ToolCall


@dataclass
class _Slot:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class StreamAggregator:
    role: Role = Role.ASSISTANT
    content: str = ""
    _slots: dict[int, _Slot] = field(default_factory=dict)

    def add(self, delta: StreamDelta) -> None:
        if delta.content_delta:
            self.content += delta.content_delta

        tc = delta.tool_call_delta
        if tc is None:
            return
        slot = self._slots.get(tc.index)
        if slot is None:
            slot = self._slots[tc.index] = _Slot()
        if tc.id:
            slot.id = tc.id
        if tc.function_name_delta:
            slot.name += tc.function_name_delta
        if tc.function_arguments_delta:
            slot.arguments += tc.function_arguments_delta

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [
            ToolCall(id=slot.id, function=FunctionCall(slot.name, slot.arguments))
            for _, slot in sorted(self._slots.items())
        ]

    def message(self) -> Message:
        """Finalize into a message; content is ``None`` for a tool-only turn."""
        tool_calls = self.tool_calls
        content: str | None = self.content
        if not content and tool_calls:
            content = None
        return Message(self.role, content, tool_calls=tool_calls)
