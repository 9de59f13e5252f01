"""
In-process event bus for observational events.

The bus carries a closed set of event types from the engine, the compressor
and the background task manager to any listener (a UI, a log, a test).
Publishing is synchronous and fire-and-forget: handler errors are logged
and isolated, never propagated to the publisher.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, TypeVar, Union

import structlog

if TYPE_CHECKING:
    from .background.manager import BackgroundTask

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextDelta:
    """A streamed fragment of model text."""

    delta: str


@dataclass(frozen=True)
class ToolCallEvent:
    """The model requested a tool call."""

    name: str
    args: str
    raw_args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultEvent:
    """A tool call finished."""

    name: str
    output: str
    is_error: bool = False


@dataclass(frozen=True)
class CompressedEvent:
    """History was compressed from ``from_tokens`` to ``to_tokens``."""

    from_tokens: int
    to_tokens: int


@dataclass(frozen=True)
class BackgroundTaskStarted:
    task: BackgroundTask


@dataclass(frozen=True)
class BackgroundTaskComplete:
    task: BackgroundTask


ChatEvent = Union[
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
    CompressedEvent,
    BackgroundTaskStarted,
    BackgroundTaskComplete,
]

EVENT_TYPES: tuple[type, ...] = (
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
    CompressedEvent,
    BackgroundTaskStarted,
    BackgroundTaskComplete,
)

E = TypeVar("E")


class EventBus:
    """Typed publish/subscribe channel.

    Handlers are keyed by event class. ``subscribe`` returns a callable that
    removes the handler again.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)
        self._wildcard: list[Callable[[ChatEvent], None]] = []

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler for one event type."""
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unknown event type: {event_type!r}")
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: Callable[[ChatEvent], None]) -> Callable[[], None]:
        """Register a handler for every event."""
        self._wildcard.append(handler)

        def unsubscribe() -> None:
            if handler in self._wildcard:
                self._wildcard.remove(handler)

        return unsubscribe

    def publish(self, event: ChatEvent) -> None:
        """Deliver an event to its handlers."""
        if not isinstance(event, EVENT_TYPES):
            raise TypeError(f"Not a chat event: {type(event).__name__}")

        handlers = list(self._handlers.get(type(event), ())) + list(self._wildcard)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    event_type=type(event).__name__,
                )

    def handler_count(self, event_type: type | None = None) -> int:
        """Number of handlers for a type, or all handlers if omitted."""
        if event_type is None:
            return sum(len(h) for h in self._handlers.values()) + len(self._wildcard)
        return len(self._handlers.get(event_type, ()))
