"""
Agent module - the conversation loop and its history management.

Includes:
- ConversationEngine: Turn loop alternating model calls and tool execution
- ChatCompressor: Token-bounded history summarization
- Project context: Environment facts shown to the model each round
"""

from .core import ConversationEngine, DEFAULT_SYSTEM_PROMPT
from .compression import (
    CharTokenEstimator,
    ChatCompressor,
    CompressionConfig,
    CompressionResult,
    CompressionStatus,
    TokenEstimator,
)
from .project_context import ProjectContext, format_project_context, get_project_context

__all__ = [
    "ConversationEngine",
    "DEFAULT_SYSTEM_PROMPT",
    "CharTokenEstimator",
    "ChatCompressor",
    "CompressionConfig",
    "CompressionResult",
    "CompressionStatus",
    "TokenEstimator",
    "ProjectContext",
    "format_project_context",
    "get_project_context",
]
