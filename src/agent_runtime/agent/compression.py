"""
Conversation Compression - keep history within a token budget.

When the estimated size of the history crosses a fraction of the model's
context window, the oldest share of the conversation is summarized by the
model into a <state_snapshot> and replaced by that summary.

Steps:
1. Estimate tokens; below the threshold nothing happens and no model call
   is made.
2. Bound historical tool output: walking from newest to oldest, tool
   responses beyond a token budget are cut down to their last lines.
3. Choose a split point by character volume, only ever at a user text
   message, so a function call is never separated from its response.
4. Summarize the prefix (folding forward any earlier snapshot).
5. Reject empty summaries and results that are not smaller than the input.
"""

import json
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

import structlog

from ..config import Settings
from ..events import CompressedEvent, EventBus
from ..llm.base import (
    BaseLLM,
    FunctionCall,
    FunctionResponse,
    Message,
    Part,
    TextPart,
    to_json,
)

logger = structlog.get_logger()

DEFAULT_MODEL_TOKEN_LIMIT = 1_000_000
DEFAULT_COMPRESSION_THRESHOLD = 0.5  # Compress above 50% of the context window
DEFAULT_PRESERVE_FRACTION = 0.3  # Keep the newest 30% (by characters)
DEFAULT_FUNCTION_RESPONSE_TOKEN_BUDGET = 50_000
TRUNCATED_RESPONSE_LINES = 30

SNAPSHOT_TAG = "<state_snapshot>"

SUMMARY_ACK = "Got it. Thanks for the additional context!"

COMPRESSION_SYSTEM_PROMPT = """You are a conversation compressor. Your job is to create a concise <state_snapshot> that captures all essential information from the conversation history.

The snapshot MUST preserve:
- All user requirements and constraints
- Key decisions made during the conversation
- Important file paths, code snippets, and technical details
- Tool call results that are still relevant
- Any established context the assistant needs to continue working

Format your response as:
<state_snapshot>
[Your compressed summary here]
</state_snapshot>

Write in the same language the user used. Be thorough but concise."""


class TokenEstimator(Protocol):
    """Counts tokens in a piece of text."""

    def count(self, text: str) -> int: ...


@dataclass(frozen=True)
class CharTokenEstimator:
    """Approximates tokens as characters divided by a fixed ratio."""

    chars_per_token: int = 4

    def count(self, text: str) -> int:
        return self.count_chars(len(text))

    def count_chars(self, chars: int) -> int:
        return math.ceil(chars / self.chars_per_token)


DEFAULT_ESTIMATOR = CharTokenEstimator()


class CompressionStatus(str, Enum):
    """Outcome of a compression check."""
    NOOP = "noop"
    COMPRESSED = "compressed"
    FAILED_EMPTY_SUMMARY = "failed_empty_summary"
    FAILED_INFLATED = "failed_inflated"


@dataclass
class CompressionConfig:
    """Configuration for history compression."""

    model_token_limit: int = DEFAULT_MODEL_TOKEN_LIMIT
    threshold: float = DEFAULT_COMPRESSION_THRESHOLD
    preserve_fraction: float = DEFAULT_PRESERVE_FRACTION
    function_response_token_budget: int = DEFAULT_FUNCTION_RESPONSE_TOKEN_BUDGET
    enabled: bool = True

    @property
    def threshold_tokens(self) -> float:
        return self.model_token_limit * self.threshold

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompressionConfig":
        return cls(
            model_token_limit=settings.model_context_limit,
            threshold=settings.compression_threshold,
            preserve_fraction=settings.compression_preserve_fraction,
            function_response_token_budget=settings.function_response_token_budget,
        )


@dataclass
class CompressionResult:
    """Result of a compression check. ``new_history`` is set only when compressed."""

    status: CompressionStatus
    original_token_count: int
    new_token_count: int
    new_history: list[Message] | None = None


def _part_chars(part: Part) -> int:
    if isinstance(part, TextPart):
        return len(part.text)
    if isinstance(part, FunctionCall):
        return len(part.name) + len(to_json(part.args))
    if isinstance(part, FunctionResponse):
        return len(part.name) + len(to_json(part.response))
    return 0


def estimate_tokens(parts: list[Part], estimator: TokenEstimator = DEFAULT_ESTIMATOR) -> int:
    """Estimate tokens over text, call name + args JSON and response JSON."""
    if isinstance(estimator, CharTokenEstimator):
        return estimator.count_chars(sum(_part_chars(p) for p in parts))

    total = 0
    for part in parts:
        if isinstance(part, TextPart):
            total += estimator.count(part.text)
        elif isinstance(part, FunctionCall):
            total += estimator.count(part.name + to_json(part.args))
        elif isinstance(part, FunctionResponse):
            total += estimator.count(part.name + to_json(part.response))
    return total


def estimate_history_tokens(history: list[Message], estimator: TokenEstimator = DEFAULT_ESTIMATOR) -> int:
    """Estimate tokens for a whole history."""
    return estimate_tokens([p for m in history for p in m.parts], estimator)


def _response_text(response: dict[str, Any]) -> str:
    """Line-oriented text of a tool response.

    A response holding a single string value is used as-is so its real
    newlines count; anything else is pretty-printed.
    """
    if len(response) == 1:
        (value,) = response.values()
        if isinstance(value, str):
            return value
    return json.dumps(response, ensure_ascii=False, indent=2, default=str)


def truncate_history_to_budget(
    history: list[Message],
    token_budget: int = DEFAULT_FUNCTION_RESPONSE_TOKEN_BUDGET,
    estimator: TokenEstimator = DEFAULT_ESTIMATOR,
    keep_lines: int = TRUNCATED_RESPONSE_LINES,
) -> list[Message]:
    """Truncate old tool responses that fall outside the token budget.

    Walks from the newest message to the oldest so recent output is always
    kept intact. Returns new Message objects; the input is not modified.
    """
    used = 0
    result: list[Message] = []

    for message in reversed(history):
        if not message.has_function_responses:
            result.append(message)
            continue

        new_parts: list[Part] = []
        for part in reversed(message.parts):
            if not isinstance(part, FunctionResponse):
                new_parts.append(part)
                continue

            tokens = estimator.count(to_json(part.response))
            if used + tokens <= token_budget:
                used += tokens
                new_parts.append(part)
                continue

            lines = _response_text(part.response).split("\n")
            if len(lines) <= keep_lines:
                used += tokens
                new_parts.append(part)
                continue

            truncated = (
                f"[Truncated: {len(lines) - keep_lines} lines omitted]\n"
                + "\n".join(lines[-keep_lines:])
            )
            used += estimator.count(truncated)
            new_parts.append(replace(part, response={"output": truncated}))

        new_parts.reverse()
        result.append(Message(role=message.role, parts=new_parts))

    result.reverse()
    return result


def find_compress_split_point(history: list[Message], fraction: float) -> int:
    """Index where the kept suffix begins.

    Only a user text message (never one carrying tool responses) can start
    the suffix, and only once ``fraction`` of the total character volume
    lies before it. Returns ``len(history)`` when the conversation ends on a
    plain model reply, and 0 when there is nothing safe to compress.
    """
    char_counts = [len(to_json(m.to_dict())) for m in history]
    target_chars = sum(char_counts) * fraction

    last_split_point = 0
    cumulative = 0
    for index, message in enumerate(history):
        if message.is_user_text:
            if cumulative >= target_chars:
                return index
            last_split_point = index
        cumulative += char_counts[index]

    if history and history[-1].role == "model" and not history[-1].has_function_calls:
        return len(history)

    return last_split_point


class ChatCompressor:
    """Decides when to compress history and produces the replacement."""

    def __init__(
        self,
        llm: BaseLLM,
        events: EventBus | None = None,
        config: CompressionConfig | None = None,
        estimator: TokenEstimator = DEFAULT_ESTIMATOR,
    ):
        self.llm = llm
        self.events = events
        self.config = config or CompressionConfig()
        self.estimator = estimator

    def _unchanged(self, status: CompressionStatus, tokens: int, new_tokens: int | None = None) -> CompressionResult:
        return CompressionResult(
            status=status,
            original_token_count=tokens,
            new_token_count=tokens if new_tokens is None else new_tokens,
        )

    async def compress_if_needed(self, history: list[Message]) -> CompressionResult:
        """Compress ``history`` if it is too large. Never mutates ``history``."""
        original_tokens = estimate_history_tokens(history, self.estimator)

        if not self.config.enabled or original_tokens <= self.config.threshold_tokens:
            return self._unchanged(CompressionStatus.NOOP, original_tokens)

        logger.info(
            "History over compression threshold",
            estimated_tokens=original_tokens,
            threshold=int(self.config.threshold_tokens),
            message_count=len(history),
        )

        truncated = truncate_history_to_budget(
            history,
            self.config.function_response_token_budget,
            self.estimator,
        )

        split_point = find_compress_split_point(truncated, 1 - self.config.preserve_fraction)
        to_compress = truncated[:split_point]
        to_keep = truncated[split_point:]

        if not to_compress:
            logger.info("No safe split point, skipping compression")
            return self._unchanged(CompressionStatus.NOOP, original_tokens)

        summary = await self._summarize(to_compress)

        if not summary:
            logger.warning("Compression produced an empty summary")
            return self._unchanged(CompressionStatus.FAILED_EMPTY_SUMMARY, original_tokens)

        new_history = [
            Message.user_text(summary),
            Message.model_text(SUMMARY_ACK),
            *to_keep,
        ]
        new_tokens = estimate_history_tokens(new_history, self.estimator)

        if new_tokens > original_tokens:
            logger.warning(
                "Compression inflated history, discarding",
                original_tokens=original_tokens,
                new_tokens=new_tokens,
            )
            return self._unchanged(CompressionStatus.FAILED_INFLATED, original_tokens, new_tokens)

        logger.info(
            "History compressed",
            original_tokens=original_tokens,
            new_tokens=new_tokens,
            compressed_messages=len(to_compress),
            kept_messages=len(to_keep),
        )
        if self.events is not None:
            self.events.publish(CompressedEvent(from_tokens=original_tokens, to_tokens=new_tokens))

        return CompressionResult(
            status=CompressionStatus.COMPRESSED,
            original_token_count=original_tokens,
            new_token_count=new_tokens,
            new_history=new_history,
        )

    async def _summarize(self, to_compress: list[Message]) -> str:
        has_previous_snapshot = any(
            SNAPSHOT_TAG in part.text
            for message in to_compress
            for part in message.parts
            if isinstance(part, TextPart)
        )

        if has_previous_snapshot:
            instruction = (
                "A previous <state_snapshot> exists in the history. Integrate all "
                "still-relevant information from that snapshot into the new one, "
                "updating it with more recent events."
            )
        else:
            instruction = "Generate a new <state_snapshot> based on the provided history."

        response = await self.llm.generate(
            messages=[
                *to_compress,
                Message.user_text(f"{instruction}\n\nGenerate the <state_snapshot>."),
            ],
            system_prompt=COMPRESSION_SYSTEM_PROMPT,
        )
        return (response.text or "").strip()
