"""
Shared fixtures for agent-runtime tests.
"""

from typing import Any, AsyncIterator

import pytest

from agent_runtime.config import Settings
from agent_runtime.llm.base import (
    BaseLLM,
    FunctionCall,
    LLMResponse,
    Message,
    StreamChunk,
    ToolDefinition,
)


class ScriptedLLM(BaseLLM):
    """Model backend that replays scripted stream turns.

    Each entry of ``turns`` is the list of chunks for one ``stream`` call.
    Once the script runs out, ``fallback`` is replayed forever.
    """

    def __init__(
        self,
        turns: list[list[StreamChunk]] | None = None,
        fallback: list[StreamChunk] | None = None,
        summary: str = "<state_snapshot>summary</state_snapshot>",
    ):
        super().__init__(api_key="test-key", model="scripted-model")
        self.turns = list(turns or [])
        self.fallback = fallback if fallback is not None else [StreamChunk(text="done")]
        self.summary = summary
        self.stream_calls: list[dict[str, Any]] = []
        self.generate_calls: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        self.generate_calls.append({
            "messages": list(messages),
            "tools": tools,
            "system_prompt": system_prompt,
        })
        return LLMResponse(text=self.summary, model=self.model)

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.stream_calls.append({
            "messages": list(messages),
            "tools": tools,
            "system_prompt": system_prompt,
        })
        chunks = self.turns.pop(0) if self.turns else self.fallback
        for chunk in chunks:
            yield chunk


def text_turn(*deltas: str) -> list[StreamChunk]:
    """A stream turn that only emits text."""
    return [StreamChunk(text=d) for d in deltas]


def call_turn(*calls: FunctionCall, text: str | None = None) -> list[StreamChunk]:
    """A stream turn that requests tool calls, optionally after some text."""
    chunks = [StreamChunk(text=text)] if text else []
    chunks.append(StreamChunk(function_calls=list(calls)))
    return chunks


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-anthropic-key",
        workspace_dir=str(tmp_path),
    )


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()
