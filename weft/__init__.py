"""weft: agent execution runtime.

Conversational tool-calling loop, sandboxed function tools, MCP tools, nested
agents and retrieval-augmented context.
"""

__version__ = "0.1.0"

from weft.agent import ConversationalLoop
from weft.config import WeftConfig
from weft.errors import WeftError
from weft.knowledge import EmbeddingEngine, RAGAugmentation, RAGIndexer, RAGRetriever
from weft.tools import Sandbox, StdioMcpTransport, ToolExecutor, ToolRegistry, define_tool
from weft.types import (
    AgentSpec,
    AgentTool,
    LocalFunctionTool,
    LoopResult,
    Message,
    RemoteMcpTool,
    Role,
)
from weft.utils import StreamAggregator

__all__ = [
    "__version__",
    "ConversationalLoop",
    "WeftConfig",
    "WeftError",
    "EmbeddingEngine",
    "RAGAugmentation",
    "RAGIndexer",
    "RAGRetriever",
    "Sandbox",
    "StdioMcpTransport",
    "ToolExecutor",
    "ToolRegistry",
    "define_tool",
    "AgentSpec",
    "AgentTool",
    "LocalFunctionTool",
    "LoopResult",
    "Message",
    "RemoteMcpTool",
    "Role",
    "StreamAggregator",
]
