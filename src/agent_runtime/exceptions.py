"""
Exception hierarchy for agent-runtime.

All runtime-specific exceptions inherit from AgentRuntimeError. Tool failures
and background task failures are never raised; they travel as data.
"""


class AgentRuntimeError(Exception):
    """Base exception for all agent-runtime errors."""


class MaxRoundsExceededError(AgentRuntimeError):
    """Raised when a single send() exhausts its round budget.

    The model kept requesting tool calls without producing a text-only
    reply. History keeps every partial round so the caller can inspect it.
    """

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"Max rounds exceeded ({max_rounds}) without a final reply")


class ToolAlreadyRegisteredError(AgentRuntimeError):
    """Raised when a tool name is registered twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Tool "{name}" is already registered')


class UnknownProviderError(AgentRuntimeError, ValueError):
    """Raised when an LLM provider name is not recognized."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown LLM provider: {provider}")
