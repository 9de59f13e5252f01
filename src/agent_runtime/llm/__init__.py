"""
LLM module for multi-provider model support.

Providers:
- Anthropic Claude (native SDK)
- OpenAI GPT (native SDK)
- Google Gemini (native SDK, imported lazily)
- OpenRouter (via OpenAI-compatible endpoint)
"""

from .base import (
    BaseLLM,
    FunctionCall,
    FunctionResponse,
    LLMResponse,
    Message,
    Part,
    StreamChunk,
    TextPart,
    ToolDefinition,
)
from .anthropic import AnthropicLLM
from .openai import OpenAILLM
from .factory import build_llm, create_llm

__all__ = [
    "BaseLLM",
    "FunctionCall",
    "FunctionResponse",
    "LLMResponse",
    "Message",
    "Part",
    "StreamChunk",
    "TextPart",
    "ToolDefinition",
    "AnthropicLLM",
    "OpenAILLM",
    "build_llm",
    "create_llm",
]
