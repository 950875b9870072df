"""Structured error hierarchy for the weft runtime."""

from __future__ import annotations


class WeftError(Exception):
    def __init__(self, code: str, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause


class LLMError(WeftError):
    def __init__(
        self,
        code: str,
        provider: str,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(code, message, cause)
        self.provider = provider
        self.status_code = status_code


class ToolError(WeftError):
    def __init__(
        self, code: str, tool_name: str, message: str, cause: Exception | None = None
    ) -> None:
        super().__init__(code, message, cause)
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    def __init__(self, tool_name: str, timeout_ms: int) -> None:
        super().__init__(
            "TOOL_TIMEOUT", tool_name, f'Tool "{tool_name}" timed out after {timeout_ms}ms'
        )
        self.timeout_ms = timeout_ms


class SandboxError(WeftError):
    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__("SANDBOX_ERROR", message, cause)


class AgentDepthError(WeftError):
    def __init__(self, agent_name: str, max_depth: int) -> None:
        super().__init__(
            "AGENT_DEPTH_EXCEEDED",
            f"Maximum agent nesting depth ({max_depth}) exceeded",
        )
        self.agent_name = agent_name
        self.max_depth = max_depth


class AbortedError(WeftError):
    def __init__(self, message: str = "Operation aborted") -> None:
        super().__init__("ABORTED", message)


class IndexingError(WeftError):
    def __init__(
        self, knowledge_base_id: str, message: str, cause: Exception | None = None
    ) -> None:
        super().__init__("INDEXING_FAILED", message, cause)
        self.knowledge_base_id = knowledge_base_id


class IndexingAbortedError(IndexingError):
    def __init__(self, knowledge_base_id: str) -> None:
        super().__init__(knowledge_base_id, "Indexing aborted")
        self.code = "INDEXING_ABORTED"
