"""Agent runtime: the conversational tool-calling loop."""

from .loop import (
    CONVERSATION_ABORTED,
    EMPTY_CONVERSATION,
    MAX_ITERATIONS_REACHED,
    ConversationalLoop,
)

__all__ = [
    "ConversationalLoop",
    "CONVERSATION_ABORTED",
    "EMPTY_CONVERSATION",
    "MAX_ITERATIONS_REACHED",
]
