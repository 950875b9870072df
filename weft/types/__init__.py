"""Core type definitions, re-exported from sub-modules."""

from .messages import Role, Message, ToolCall, FunctionCall, ImageAttachment
from .tools import (
    ToolKind, Tool, LocalFunctionTool, RemoteMcpTool, AgentTool, AgentSpec,
    McpCallResult, McpTransport,
)
from .events import (
    LoopEvent, LoopResult, StreamDeltaEvent, MessageAppendedEvent, ProgressEvent,
    ErrorEvent, DoneEvent,
)
from .llm import ChatParams, StreamDelta, ToolCallDelta, ModelProvider, EmbeddingProvider
from .knowledge import KnowledgeFile, KnowledgeBase, Chunk, VectorSet, RetrievalResult

__all__ = [
    "Role", "Message", "ToolCall", "FunctionCall", "ImageAttachment",
    "ToolKind", "Tool", "LocalFunctionTool", "RemoteMcpTool", "AgentTool", "AgentSpec",
    "McpCallResult", "McpTransport",
    "LoopEvent", "LoopResult", "StreamDeltaEvent", "MessageAppendedEvent", "ProgressEvent",
    "ErrorEvent", "DoneEvent",
    "ChatParams", "StreamDelta", "ToolCallDelta", "ModelProvider", "EmbeddingProvider",
    "KnowledgeFile", "KnowledgeBase", "Chunk", "VectorSet", "RetrievalResult",
]
