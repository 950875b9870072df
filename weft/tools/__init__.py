"""Tool execution: sandbox, MCP transport, registry and executor."""

from .executor import ToolExecutor, extract_request, parse_arguments
from .mcp_client import McpClient, McpServerConfig, StdioMcpTransport, format_mcp_content
from .registry import ToolRegistry, define_tool
from .sandbox import Sandbox, SandboxResult, wrap_function_body

__all__ = [
    "ToolExecutor", "extract_request", "parse_arguments",
    "McpClient", "McpServerConfig", "StdioMcpTransport", "format_mcp_content",
    "ToolRegistry", "define_tool",
    "Sandbox", "SandboxResult", "wrap_function_body",
]
