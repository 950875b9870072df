"""Model provider adapters."""

from .base import BaseModelProvider
from .openai import OpenAIProvider

__all__ = ["BaseModelProvider", "OpenAIProvider"]
