"""
Backend construction.

``create_llm`` resolves a provider through Settings (API key, default
model, base URL) and builds its adapter. ``build_llm`` builds straight
from an explicit LLMConfig. Sub-agents that name their own provider go
through ``create_llm`` with the parent's Settings.
"""

from typing import Callable

import structlog

from ..config import LLMConfig, Settings, get_settings
from ..exceptions import UnknownProviderError
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .openai import OpenAILLM

logger = structlog.get_logger()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _anthropic(config: LLMConfig) -> BaseLLM:
    return AnthropicLLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )


def _openai(config: LLMConfig) -> BaseLLM:
    return OpenAILLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )


def _openrouter(config: LLMConfig) -> BaseLLM:
    return OpenAILLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url or OPENROUTER_BASE_URL,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )


def _google(config: LLMConfig) -> BaseLLM:
    # google-generativeai is an optional extra
    from .google import GoogleGeminiLLM

    return GoogleGeminiLLM(
        api_key=config.api_key,
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )


BUILDERS: dict[str, Callable[[LLMConfig], BaseLLM]] = {
    "anthropic": _anthropic,
    "openai": _openai,
    "google": _google,
    "openrouter": _openrouter,
}


def build_llm(config: LLMConfig) -> BaseLLM:
    """Build the adapter for an explicit provider configuration."""
    builder = BUILDERS.get(config.provider)
    if builder is None:
        raise UnknownProviderError(config.provider)
    return builder(config)


def create_llm(settings: Settings | None = None, provider: str | None = None) -> BaseLLM:
    """Create the backend for ``provider`` (default: settings.default_provider).

    Raises:
        UnknownProviderError: the provider name is not recognized.
    """
    settings = settings or get_settings()
    config = settings.get_llm_config(provider)
    logger.info("Creating LLM backend", provider=config.provider, model=config.model)
    return build_llm(config)
