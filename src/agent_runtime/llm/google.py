"""
Native Google Gemini LLM provider.

Uses the google-generativeai SDK directly. The SDK is an optional
dependency and is imported on first use.
"""

from typing import Any, AsyncIterator

import structlog

from .base import (
    BaseLLM,
    FunctionCall,
    LLMResponse,
    Message,
    StreamChunk,
    ToolDefinition,
)

logger = structlog.get_logger()


class GoogleGeminiLLM(BaseLLM):
    """Native Google Gemini LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self._client = None
        self._call_counter = 0

    def _get_client(self):
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                import google.generativeai as genai
            except ImportError:
                raise ImportError(
                    "google-generativeai not installed. "
                    "Run: pip install 'agent-runtime[google]'"
                )
            genai.configure(api_key=self.api_key)
            self._client = genai
        return self._client

    @property
    def provider_name(self) -> str:
        return "google"

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Messages to Gemini format.

        Gemini has no tool role; responses go back as a user turn.
        """
        converted = []

        for msg in messages:
            parts: list[dict[str, Any]] = []
            for resp in msg.function_responses:
                parts.append({
                    "function_response": {"name": resp.name, "response": resp.response},
                })
            if msg.text:
                parts.append({"text": msg.text})
            for fc in msg.function_calls:
                parts.append({"function_call": {"name": fc.name, "args": fc.args}})
            if not parts:
                parts.append({"text": ""})

            role = "model" if msg.role == "model" else "user"
            converted.append({"role": role, "parts": parts})

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Gemini function declarations."""
        return [{
            "function_declarations": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                }
                for tool in tools
            ]
        }]

    def _make_model(self, system_prompt: str | None):
        genai = self._get_client()

        model_kwargs: dict[str, Any] = {
            "model_name": self.model,
            "generation_config": {
                "max_output_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
        }

        if system_prompt:
            model_kwargs["system_instruction"] = system_prompt

        return genai.GenerativeModel(**model_kwargs)

    def _to_call(self, fc: Any) -> FunctionCall:
        # Gemini calls carry no id; mint one so responses can be correlated
        self._call_counter += 1
        return FunctionCall(
            id=f"gemini_{fc.name}_{self._call_counter}",
            name=fc.name,
            args=dict(fc.args) if fc.args else {},
        )

    def _split_parts(self, candidate: Any) -> tuple[str, list[FunctionCall]]:
        text = ""
        calls: list[FunctionCall] = []
        for part in candidate.content.parts:
            fc = getattr(part, "function_call", None)
            if fc and fc.name:
                calls.append(self._to_call(fc))
            elif getattr(part, "text", None):
                text += part.text
        return text, calls

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from Gemini."""
        model = self._make_model(system_prompt)

        generate_kwargs: dict[str, Any] = {"contents": self._convert_messages(messages)}
        if tools:
            generate_kwargs["tools"] = self._convert_tools(tools)

        try:
            response = await model.generate_content_async(**generate_kwargs)
        except Exception as e:
            logger.error("Gemini API error", error=str(e))
            raise

        text = ""
        calls: list[FunctionCall] = []
        stop_reason = None
        if response.candidates:
            candidate = response.candidates[0]
            text, calls = self._split_parts(candidate)
            stop_reason = candidate.finish_reason.name

        usage = getattr(response, "usage_metadata", None)

        return LLMResponse(
            text=text,
            function_calls=calls,
            input_tokens=getattr(usage, "prompt_token_count", 0) if usage else 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) if usage else 0,
            model=self.model,
            stop_reason=stop_reason,
            raw_response=response,
        )

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from Gemini."""
        model = self._make_model(system_prompt)

        generate_kwargs: dict[str, Any] = {
            "contents": self._convert_messages(messages),
            "stream": True,
        }
        if tools:
            generate_kwargs["tools"] = self._convert_tools(tools)

        calls: list[FunctionCall] = []
        try:
            response = await model.generate_content_async(**generate_kwargs)

            async for chunk in response:
                if not chunk.candidates:
                    continue
                text, chunk_calls = self._split_parts(chunk.candidates[0])
                if text:
                    yield StreamChunk(text=text)
                calls.extend(chunk_calls)

        except Exception as e:
            logger.error("Gemini streaming error", error=str(e))
            raise

        if calls:
            yield StreamChunk(function_calls=calls)
