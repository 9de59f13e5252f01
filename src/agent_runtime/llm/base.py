"""
Base classes for LLM providers and the conversation data model.

A Message is an ordered list of Parts. A Part is exactly one of TextPart,
FunctionCall or FunctionResponse; a FunctionCall and its FunctionResponse
share an ``id``.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Literal, Union


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class TextPart:
    """Free text."""

    text: str


@dataclass
class FunctionCall:
    """A tool call requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    # Opaque provider data that must round-trip with the call
    provider_extension: dict[str, Any] | None = None


@dataclass
class FunctionResponse:
    """The result of a tool call, correlated by ``id``."""

    id: str
    name: str
    response: dict[str, Any] = field(default_factory=dict)


Part = Union[TextPart, FunctionCall, FunctionResponse]

Role = Literal["user", "model", "tool"]


def part_to_dict(part: Part) -> dict[str, Any]:
    """Tagged dict view of a part."""
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, FunctionCall):
        return {"functionCall": asdict(part)}
    if isinstance(part, FunctionResponse):
        return {"functionResponse": asdict(part)}
    raise TypeError(f"Unknown part type: {type(part).__name__}")


def to_json(value: Any) -> str:
    """Compact JSON used for size estimates."""
    return json.dumps(value, ensure_ascii=False, default=str)


@dataclass
class Message:
    """One turn in a conversation."""

    role: Role
    parts: list[Part] = field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> "Message":
        return cls(role="user", parts=[TextPart(text)])

    @classmethod
    def model_text(cls, text: str) -> "Message":
        return cls(role="model", parts=[TextPart(text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [p for p in self.parts if isinstance(p, FunctionCall)]

    @property
    def function_responses(self) -> list[FunctionResponse]:
        return [p for p in self.parts if isinstance(p, FunctionResponse)]

    @property
    def has_function_calls(self) -> bool:
        return any(isinstance(p, FunctionCall) for p in self.parts)

    @property
    def has_function_responses(self) -> bool:
        return any(isinstance(p, FunctionResponse) for p in self.parts)

    @property
    def is_user_text(self) -> bool:
        """A user turn that carries no tool responses."""
        return self.role == "user" and not self.has_function_responses

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [part_to_dict(p) for p in self.parts]}


@dataclass
class LLMResponse:
    """Response from a non-streaming LLM call."""

    text: str = ""
    function_calls: list[FunctionCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None
    raw_response: Any = None


@dataclass
class StreamChunk:
    """One increment of a streaming response.

    Text arrives as deltas; function calls arrive once per batch.
    """

    text: str | None = None
    function_calls: list[FunctionCall] | None = None


class BaseLLM(ABC):
    """Base class for LLM providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from the LLM."""
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from the LLM."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
