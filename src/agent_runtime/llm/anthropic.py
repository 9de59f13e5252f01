"""
Anthropic Claude LLM provider.
"""

from typing import Any, AsyncIterator

import anthropic
import structlog

from .base import (
    BaseLLM,
    FunctionCall,
    LLMResponse,
    Message,
    StreamChunk,
    ToolDefinition,
    to_json,
)

logger = structlog.get_logger()


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Messages to Anthropic format.

        Tool responses travel as ``tool_result`` blocks in a user turn.
        """
        converted = []

        for msg in messages:
            if msg.has_function_responses:
                converted.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": resp.id,
                            "content": to_json(resp.response),
                            "is_error": "error" in resp.response,
                        }
                        for resp in msg.function_responses
                    ],
                })
            elif msg.role == "model":
                content: list[dict[str, Any]] = []
                if msg.text:
                    content.append({"type": "text", "text": msg.text})
                for fc in msg.function_calls:
                    content.append({
                        "type": "tool_use",
                        "id": fc.id,
                        "name": fc.name,
                        "input": fc.args,
                    })
                if not content:
                    # Anthropic rejects empty assistant turns
                    content.append({"type": "text", "text": "(no content)"})
                converted.append({"role": "assistant", "content": content})
            else:
                converted.append({
                    "role": "user",
                    "content": msg.text,
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Anthropic format."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def _build_kwargs(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        system_prompt: str | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": self._convert_messages(messages),
        }

        if system_prompt:
            kwargs["system"] = system_prompt

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        return kwargs

    @staticmethod
    def _extract_calls(blocks: list[Any]) -> list[FunctionCall]:
        return [
            FunctionCall(
                id=block.id,
                name=block.name,
                args=dict(block.input) if isinstance(block.input, dict) else {},
            )
            for block in blocks
            if block.type == "tool_use"
        ]

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        kwargs = self._build_kwargs(messages, tools, system_prompt)

        try:
            response = await self.client.messages.create(**kwargs)

            text = "".join(block.text for block in response.content if block.type == "text")

            return LLMResponse(
                text=text,
                function_calls=self._extract_calls(response.content),
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                model=response.model,
                stop_reason=response.stop_reason,
                raw_response=response,
            )

        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            raise

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from Claude."""
        kwargs = self._build_kwargs(messages, tools, system_prompt)

        try:
            async with self.client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield StreamChunk(text=text)
                final = await stream.get_final_message()

        except anthropic.APIError as e:
            logger.error("Anthropic streaming error", error=str(e))
            raise

        calls = self._extract_calls(final.content)
        if calls:
            yield StreamChunk(function_calls=calls)
