"""
Weft Configuration Module
"""

from weft.config.base import WeftBaseConfig
from weft.config.models import CircuitBreakerConfig, ModelConfig, RetryConfig
from weft.config.runtime import ChunkConfig, LoopConfig, RAGConfig, SandboxConfig, WeftConfig

__all__ = [
    "WeftBaseConfig",
    "WeftConfig",
    "LoopConfig",
    "SandboxConfig",
    "ChunkConfig",
    "RAGConfig",
    "ModelConfig",
    "RetryConfig",
    "CircuitBreakerConfig",
]
