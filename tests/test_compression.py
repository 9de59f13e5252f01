"""
Tests for conversation compression.
"""

import copy
import json

import pytest

from agent_runtime.agent.compression import (
    SNAPSHOT_TAG,
    SUMMARY_ACK,
    CharTokenEstimator,
    ChatCompressor,
    CompressionConfig,
    CompressionStatus,
    estimate_history_tokens,
    estimate_tokens,
    find_compress_split_point,
    truncate_history_to_budget,
)
from agent_runtime.events import CompressedEvent, EventBus
from agent_runtime.llm.base import FunctionCall, FunctionResponse, Message, TextPart

from conftest import ScriptedLLM


def tool_round(call_id: str, output: str) -> list[Message]:
    return [
        Message(role="model", parts=[FunctionCall(id=call_id, name="run_shell_command", args={"command": "ls"})]),
        Message(role="tool", parts=[FunctionResponse(id=call_id, name="run_shell_command", response={"output": output})]),
    ]


def test_estimate_tokens_rounds_up():
    """Test the character estimator divides by four and rounds up."""
    assert estimate_tokens([TextPart("abcdefgh")]) == 2
    assert estimate_tokens([TextPart("abcde")]) == 2
    assert estimate_tokens([]) == 0


def test_estimate_tokens_counts_calls_and_responses():
    """Test calls count name plus JSON args and responses count name plus JSON body."""
    call = FunctionCall(id="1", name="ab", args={"k": "v"})
    response = FunctionResponse(id="1", name="ab", response={"k": "v"})

    # "ab" + '{"k": "v"}' is 12 characters
    assert estimate_tokens([call]) == 3
    assert estimate_tokens([response]) == 3


def test_custom_estimator():
    """Test a pluggable estimator changes the count."""

    class WordEstimator:
        def count(self, text: str) -> int:
            return len(text.split())

    assert estimate_tokens([TextPart("one two three")], WordEstimator()) == 3
    assert estimate_tokens([TextPart("abcdefgh")], CharTokenEstimator(chars_per_token=2)) == 4


@pytest.mark.asyncio
async def test_below_threshold_is_noop_without_model_call():
    """Test 400k tokens against a 1M limit at 0.5 does nothing and calls no model."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(llm)
    history = [Message.user_text("a" * 1_600_000)]

    result = await compressor.compress_if_needed(history)

    assert result.status is CompressionStatus.NOOP
    assert result.original_token_count == 400_000
    assert result.new_token_count == 400_000
    assert result.new_history is None
    assert llm.generate_calls == []


@pytest.mark.asyncio
async def test_at_threshold_is_noop():
    """Test a history exactly at the threshold is left alone."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(llm, config=CompressionConfig(model_token_limit=100, threshold=0.5))

    result = await compressor.compress_if_needed([Message.user_text("a" * 200)])

    assert result.status is CompressionStatus.NOOP
    assert llm.generate_calls == []


@pytest.mark.asyncio
async def test_above_threshold_compresses():
    """Test 900k tokens triggers compression and shrinks the history."""
    llm = ScriptedLLM(summary="<state_snapshot>the story so far</state_snapshot>")
    events = EventBus()
    published = []
    events.subscribe(CompressedEvent, published.append)
    compressor = ChatCompressor(llm, events)
    history = [
        Message.user_text("a" * 1_200_000),
        Message.model_text("b" * 1_200_000),
        Message.user_text("c" * 600_000),
        Message.model_text("d" * 600_000),
    ]
    assert estimate_history_tokens(history) == 900_000

    result = await compressor.compress_if_needed(history)

    assert result.status is CompressionStatus.COMPRESSED
    assert result.original_token_count == 900_000
    assert result.new_token_count < 900_000
    assert result.new_history[0].role == "user"
    assert result.new_history[0].text.startswith(SNAPSHOT_TAG)
    assert result.new_history[1].role == "model"
    assert result.new_history[1].text == SUMMARY_ACK
    assert len(llm.generate_calls) == 1
    assert published == [CompressedEvent(from_tokens=900_000, to_tokens=result.new_token_count)]


@pytest.mark.asyncio
async def test_preserved_suffix_is_identical():
    """Test the kept tail of history is unchanged by compression."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(llm)
    history = [
        Message.user_text("a" * 1_200_000),
        Message.model_text("b" * 1_200_000),
        Message.user_text("c" * 600_000),
        *tool_round("call-1", "x" * 600_000),
    ]

    result = await compressor.compress_if_needed(history)

    assert result.status is CompressionStatus.COMPRESSED
    assert result.new_history[2:] == history[2:]


@pytest.mark.asyncio
async def test_compression_does_not_mutate_input():
    """Test compress_if_needed leaves the caller's history untouched."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(
        llm,
        config=CompressionConfig(model_token_limit=1000, threshold=0.1, function_response_token_budget=10),
    )
    long_output = "\n".join(f"line {i}" for i in range(100))
    history = [
        Message.user_text("start " * 50),
        *tool_round("c1", long_output),
        Message.model_text("done"),
        Message.user_text("again"),
        *tool_round("c2", long_output),
    ]
    snapshot = copy.deepcopy(history)

    await compressor.compress_if_needed(history)

    assert history == snapshot


@pytest.mark.asyncio
async def test_empty_summary_fails():
    """Test a blank summary is rejected and history kept."""
    llm = ScriptedLLM(summary="   \n ")
    compressor = ChatCompressor(llm, config=CompressionConfig(model_token_limit=100, threshold=0.5))
    history = [Message.user_text("a" * 400), Message.model_text("b" * 400)]

    result = await compressor.compress_if_needed(history)

    assert result.status is CompressionStatus.FAILED_EMPTY_SUMMARY
    assert result.new_history is None
    assert result.new_token_count == result.original_token_count


@pytest.mark.asyncio
async def test_inflated_summary_fails():
    """Test a summary larger than the original is discarded."""
    llm = ScriptedLLM(summary="z" * 2000)
    events = EventBus()
    published = []
    events.subscribe(CompressedEvent, published.append)
    compressor = ChatCompressor(llm, events, CompressionConfig(model_token_limit=100, threshold=0.5))
    history = [Message.user_text("a" * 400), Message.model_text("b" * 400)]

    result = await compressor.compress_if_needed(history)

    assert result.status is CompressionStatus.FAILED_INFLATED
    assert result.new_history is None
    assert result.new_token_count > result.original_token_count
    assert published == []


@pytest.mark.asyncio
async def test_previous_snapshot_is_folded_forward():
    """Test an existing snapshot in the compressed prefix changes the instruction."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(llm, config=CompressionConfig(model_token_limit=100, threshold=0.5))
    history = [
        Message.user_text("<state_snapshot>earlier work</state_snapshot>"),
        Message.model_text(SUMMARY_ACK),
        Message.user_text("a" * 400),
        Message.model_text("b" * 400),
    ]

    await compressor.compress_if_needed(history)

    instruction = llm.generate_calls[0]["messages"][-1].text
    assert "previous <state_snapshot>" in instruction


@pytest.mark.asyncio
async def test_fresh_snapshot_instruction():
    """Test a prefix without a snapshot asks for a new one."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(llm, config=CompressionConfig(model_token_limit=100, threshold=0.5))

    await compressor.compress_if_needed([Message.user_text("a" * 400), Message.model_text("b" * 400)])

    call = llm.generate_calls[0]
    assert "Generate a new <state_snapshot>" in call["messages"][-1].text
    assert call["system_prompt"] is not None


@pytest.mark.asyncio
async def test_disabled_compression_is_noop():
    """Test a disabled compressor never summarizes."""
    llm = ScriptedLLM()
    compressor = ChatCompressor(llm, config=CompressionConfig(model_token_limit=10, enabled=False))

    result = await compressor.compress_if_needed([Message.user_text("a" * 400)])

    assert result.status is CompressionStatus.NOOP
    assert llm.generate_calls == []


def test_split_point_only_at_user_text():
    """Test no split point separates a function call from its response."""
    history = [
        Message.user_text("q1 " * 100),
        *tool_round("c1", "out " * 500),
        Message.model_text("a1 " * 50),
        Message.user_text("q2 " * 100),
        *tool_round("c2", "out " * 800),
        *tool_round("c3", "out " * 300),
        Message.model_text("a2 " * 50),
        Message.user_text("q3"),
        *tool_round("c4", "out " * 100),
    ]

    for step in range(1, 20):
        fraction = step / 20
        index = find_compress_split_point(history, fraction)
        assert 0 <= index <= len(history)
        if 0 < index < len(history):
            assert history[index].is_user_text

        suffix = history[index:]
        call_ids = {c.id for m in suffix for c in m.function_calls}
        response_ids = {r.id for m in suffix for r in m.function_responses}
        assert response_ids <= call_ids


def test_split_point_after_final_reply_compresses_everything():
    """Test a history ending on a plain model reply can be compressed whole."""
    history = [Message.user_text("a" * 10), Message.model_text("b" * 10)]

    assert find_compress_split_point(history, 0.7) == 2


def test_split_point_without_safe_boundary():
    """Test a history that is one open tool exchange has nothing to compress."""
    history = [Message.user_text("go"), *tool_round("c1", "x" * 1000)]

    assert find_compress_split_point(history, 0.7) == 0


def test_truncate_keeps_newest_within_budget():
    """Test older tool output beyond the budget is cut to its last lines."""
    output = "\n".join(f"line {i}" for i in range(100))
    history = [
        Message.user_text("go"),
        *tool_round("old", output),
        *tool_round("new", output),
    ]
    newest_tokens = CharTokenEstimator().count(
        '{"output": ' + json.dumps(output) + "}"
    )

    result = truncate_history_to_budget(history, token_budget=newest_tokens + 10)

    newest = result[4].parts[0]
    oldest = result[2].parts[0]
    assert newest.response == {"output": output}
    assert oldest.id == "old"
    assert oldest.response["output"].startswith("[Truncated: 70 lines omitted]")
    truncated_lines = oldest.response["output"].split("\n")
    assert truncated_lines[1:] == [f"line {i}" for i in range(70, 100)]
    assert history[2].parts[0].response == {"output": output}


def test_truncate_leaves_short_responses_intact():
    """Test responses of at most thirty lines are never truncated."""
    output = "\n".join(f"line {i}" for i in range(30))
    history = [Message.user_text("go"), *tool_round("c1", output)]

    result = truncate_history_to_budget(history, token_budget=1)

    assert result[2].parts[0].response == {"output": output}


def test_truncate_pretty_prints_structured_responses():
    """Test multi-field responses are truncated by their formatted lines."""
    response = {f"key{i}": i for i in range(50)}
    history = [
        Message.user_text("go"),
        Message(role="model", parts=[FunctionCall(id="c1", name="read_folder", args={})]),
        Message(role="tool", parts=[FunctionResponse(id="c1", name="read_folder", response=response)]),
    ]

    result = truncate_history_to_budget(history, token_budget=1)

    truncated = result[2].parts[0].response["output"]
    assert truncated.startswith("[Truncated: ")
    assert truncated.rstrip().endswith("}")
