"""
OpenAI GPT LLM provider (also works with OpenRouter and compatible APIs).
"""

import json
from typing import Any, AsyncIterator

import openai
import structlog

from .base import (
    BaseLLM,
    FunctionCall,
    FunctionResponse,
    LLMResponse,
    Message,
    StreamChunk,
    ToolDefinition,
    to_json,
)

logger = structlog.get_logger()


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Malformed tool call arguments", raw=raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


class OpenAILLM(BaseLLM):
    """OpenAI GPT LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Messages to OpenAI chat format.

        Each FunctionResponse becomes its own ``tool`` message.
        """
        converted = []

        for msg in messages:
            if msg.has_function_responses:
                for resp in msg.function_responses:
                    converted.append({
                        "role": "tool",
                        "tool_call_id": resp.id,
                        "content": to_json(resp.response),
                    })
            elif msg.role == "model":
                entry: dict[str, Any] = {"role": "assistant", "content": msg.text or None}
                if msg.has_function_calls:
                    entry["tool_calls"] = [
                        {
                            "id": fc.id,
                            "type": "function",
                            "function": {
                                "name": fc.name,
                                "arguments": json.dumps(fc.args),
                            },
                        }
                        for fc in msg.function_calls
                    ]
                elif entry["content"] is None:
                    entry["content"] = ""
                converted.append(entry)
            else:
                converted.append({"role": "user", "content": msg.text})

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to OpenAI format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _build_kwargs(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        system_prompt: str | None,
    ) -> dict[str, Any]:
        converted_messages = self._convert_messages(messages)

        if system_prompt:
            converted_messages.insert(0, {"role": "system", "content": system_prompt})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": converted_messages,
        }

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        return kwargs

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from GPT."""
        kwargs = self._build_kwargs(messages, tools, system_prompt)

        try:
            response = await self.client.chat.completions.create(**kwargs)

            choice = response.choices[0]
            message = choice.message

            function_calls = [
                FunctionCall(
                    id=tc.id,
                    name=tc.function.name,
                    args=_parse_arguments(tc.function.arguments),
                )
                for tc in message.tool_calls or []
            ]

            return LLMResponse(
                text=message.content or "",
                function_calls=function_calls,
                input_tokens=response.usage.prompt_tokens if response.usage else 0,
                output_tokens=response.usage.completion_tokens if response.usage else 0,
                model=response.model,
                stop_reason=choice.finish_reason,
                raw_response=response,
            )

        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e))
            raise

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from GPT.

        Tool call fragments are assembled by index and emitted as one batch
        when the stream ends.
        """
        kwargs = self._build_kwargs(messages, tools, system_prompt)
        kwargs["stream"] = True

        pending: dict[int, dict[str, str]] = {}

        try:
            stream = await self.client.chat.completions.create(**kwargs)

            async for chunk in stream:  # type: ignore
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield StreamChunk(text=delta.content)
                for tc in delta.tool_calls or []:
                    slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function:
                        slot["name"] += tc.function.name or ""
                        slot["arguments"] += tc.function.arguments or ""

        except openai.APIError as e:
            logger.error("OpenAI streaming error", error=str(e))
            raise

        if pending:
            yield StreamChunk(function_calls=[
                FunctionCall(
                    id=slot["id"] or f"call_{index}",
                    name=slot["name"],
                    args=_parse_arguments(slot["arguments"]),
                )
                for index, slot in sorted(pending.items())
            ])
