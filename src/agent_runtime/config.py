"""
Configuration management for agent-runtime.

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal, get_args

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import UnknownProviderError

Provider = Literal["anthropic", "openai", "google", "openrouter"]

PROVIDERS = get_args(Provider)


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Provider = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 8192
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "agent-runtime"
    debug: bool = False
    log_level: str = "INFO"

    # LLM Providers (API Keys)
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    google_api_key: str = Field(default="", description="Google AI API key for Gemini")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")

    # Default model settings
    default_provider: Provider = "anthropic"
    default_model: str = ""
    max_tokens: int = 8192
    temperature: float = 0.7

    # Conversation
    max_rounds: int = Field(default=100, description="Max model/tool rounds per user turn")

    # Context compression
    model_context_limit: int = Field(default=1_000_000, description="Model context window in tokens")
    compression_threshold: float = Field(
        default=0.5, description="Compress when history exceeds this fraction of the context limit"
    )
    compression_preserve_fraction: float = Field(
        default=0.3, description="Fraction of history (by characters) kept verbatim"
    )
    function_response_token_budget: int = Field(
        default=50_000, description="Token budget for tool outputs before older ones are truncated"
    )
    chars_per_token: int = Field(default=4, description="Characters per token for estimation")

    # Tools
    workspace_dir: str = Field(default="", description="Workspace root for file and shell tools (default: cwd)")
    shell_timeout_seconds: int = Field(default=30, description="Foreground shell command timeout")
    shell_max_output_chars: int = Field(default=30_000, description="Max characters kept per output stream")

    @field_validator("compression_threshold", "compression_preserve_fraction")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("must be in the range (0, 1]")
        return v

    @field_validator("max_rounds", "chars_per_token", "model_context_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def has_llm_key(self) -> bool:
        """Whether any provider API key is configured."""
        return bool(
            self.anthropic_api_key
            or self.openai_api_key
            or self.google_api_key
            or self.openrouter_api_key
        )

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider.

        Raises:
            UnknownProviderError: the provider name is not recognized.
        """
        provider = provider or self.default_provider
        if provider not in PROVIDERS:
            raise UnknownProviderError(provider)

        api_key_map = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "google": self.google_api_key,
            "openrouter": self.openrouter_api_key,
        }

        model_map = {
            "anthropic": "claude-sonnet-4-20250514",
            "openai": "gpt-4o",
            "google": "gemini-2.5-flash",
            "openrouter": "anthropic/claude-sonnet-4",
        }

        base_url_map = {
            "anthropic": None,
            "openai": None,
            "google": None,
            "openrouter": "https://openrouter.ai/api/v1",
        }

        model = model_map.get(provider, "")
        if provider == self.default_provider and self.default_model:
            model = self.default_model

        return LLMConfig(
            provider=provider,  # type: ignore
            model=model,
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
