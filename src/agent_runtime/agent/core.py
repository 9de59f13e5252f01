"""
Core conversation engine.

This is the turn loop of the system. For each user message it:
1. Splices finished background task reports into history
2. Compresses history when it has grown too large
3. Alternates model calls and tool execution until the model replies with
   text only, or the round limit is reached

Tool calls requested in one round run concurrently; their results are
rejoined in request order into a single tool message.
"""

import asyncio
from typing import Callable

import structlog

from ..background.manager import BackgroundTask, BackgroundTaskManager, describe_task
from ..config import Settings, get_settings
from ..events import BackgroundTaskComplete, EventBus, TextDelta, ToolCallEvent, ToolResultEvent
from ..exceptions import MaxRoundsExceededError
from ..llm.base import BaseLLM, FunctionCall, FunctionResponse, Message, Part, TextPart
from ..tools.registry import ToolRegistry
from .compression import ChatCompressor, CharTokenEstimator, CompressionConfig, CompressionStatus
from .project_context import format_project_context, get_project_context

logger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = """You are an interactive coding agent working in the user's project directory.

You have access to tools that help you accomplish tasks:
- **read_file** / **read_folder**: Inspect files and directories in the workspace
- **write_file** / **replace**: Create and edit files
- **run_shell_command**: Run shell commands; long-running commands can run in the background
- **get_task_output** / **kill_task**: Check on or stop background tasks
- **sub_agent**: Delegate a focused investigation to a specialized sub-agent

Guidelines:
1. Be helpful, accurate, and concise
2. Read the relevant code before changing it
3. Prefer small, verifiable steps and check your work with the available tools
4. When a tool fails, read the error and adjust rather than repeating the same call
5. Use background execution for builds, servers and other long-running commands
6. If you're unsure, say so"""

CONTEXT_ACK = "Got it. Thanks for the context!"

BACKGROUND_REPORT_ACK = "Noted the background task results."

# Per-task output cap when splicing reports into history
BACKGROUND_REPORT_MAX_CHARS = 2000


def _default_context_provider(workspace_dir: str | None) -> Callable[[], str]:
    def provide() -> str:
        return format_project_context(get_project_context(workspace_dir))
    return provide


class ConversationEngine:
    """Drives one conversation between the user, the model and the tools.

    ``send`` must not be called concurrently on the same instance.
    """

    def __init__(
        self,
        llm: BaseLLM,
        tool_registry: ToolRegistry | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        events: EventBus | None = None,
        compressor: ChatCompressor | None = None,
        background: BackgroundTaskManager | None = None,
        max_rounds: int | None = None,
        workspace_dir: str | None = None,
        context_provider: Callable[[], str] | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.llm = llm
        self.tool_registry = tool_registry or ToolRegistry()
        self.system_prompt = system_prompt
        self.events = events or EventBus()
        self.compressor = compressor or ChatCompressor(
            llm,
            self.events,
            CompressionConfig.from_settings(self.settings),
            CharTokenEstimator(self.settings.chars_per_token),
        )
        self.background = background
        self.max_rounds = max_rounds or self.settings.max_rounds
        self.context_provider = context_provider or _default_context_provider(
            workspace_dir or self.settings.workspace_dir or None
        )

        self._history: list[Message] = []
        self._pending_reports: list[BackgroundTask] = []
        self._unsubscribe: Callable[[], None] | None = None

        if background is not None:
            self._unsubscribe = background.events.subscribe(
                BackgroundTaskComplete, self._on_background_complete
            )

    @property
    def history(self) -> list[Message]:
        """A copy of the conversation history."""
        return list(self._history)

    @property
    def pending_background_reports(self) -> list[BackgroundTask]:
        """Completed tasks not yet spliced into history."""
        return list(self._pending_reports)

    def clear(self) -> None:
        """Forget the conversation. Pending background reports are kept."""
        self._history = []

    def close(self) -> None:
        """Stop listening for background completions."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_background_complete(self, event: BackgroundTaskComplete) -> None:
        self._pending_reports.append(event.task)

    def _drain_background(self) -> None:
        """Splice buffered completion reports into history as one exchange."""
        if not self._pending_reports:
            return

        reports, self._pending_reports = self._pending_reports, []
        body = "\n\n".join(
            describe_task(task, max_output_chars=BACKGROUND_REPORT_MAX_CHARS)
            for task in reports
        )
        self._history.append(
            Message.user_text(f"<background-task-results>\n{body}\n</background-task-results>")
        )
        self._history.append(Message.model_text(BACKGROUND_REPORT_ACK))
        logger.info(
            "Background results added to history",
            task_ids=[task.task_id for task in reports],
        )

    async def _maybe_compress(self) -> None:
        result = await self.compressor.compress_if_needed(self._history)
        if result.status is CompressionStatus.COMPRESSED and result.new_history is not None:
            self._history = result.new_history
        elif result.status is not CompressionStatus.NOOP:
            logger.warning(
                "Compression failed, keeping history",
                status=result.status.value,
                tokens=result.original_token_count,
            )

    def _build_messages(self) -> list[Message]:
        return [
            Message.user_text(self.context_provider()),
            Message.model_text(CONTEXT_ACK),
            *self._history,
        ]

    async def _stream_round(self) -> tuple[str, list[FunctionCall]]:
        tools = self.tool_registry.get_definitions()
        text_chunks: list[str] = []
        calls: list[FunctionCall] = []

        async for chunk in self.llm.stream(
            messages=self._build_messages(),
            tools=tools if tools else None,
            system_prompt=self.system_prompt,
        ):
            if chunk.text:
                text_chunks.append(chunk.text)
                self.events.publish(TextDelta(delta=chunk.text))
            if chunk.function_calls:
                calls.extend(chunk.function_calls)

        return "".join(text_chunks), calls

    async def _execute_calls(self, calls: list[FunctionCall]) -> list[FunctionResponse]:
        for call in calls:
            self.events.publish(ToolCallEvent(
                name=call.name,
                args=self.tool_registry.display_args(call.name, call.args),
                raw_args=call.args,
            ))

        results = await asyncio.gather(
            *(self.tool_registry.execute(call.name, call.args) for call in calls)
        )

        responses = []
        for call, result in zip(calls, results):
            self.events.publish(ToolResultEvent(
                name=call.name,
                output=result.display_text,
                is_error=not result.success,
            ))
            responses.append(FunctionResponse(
                id=call.id,
                name=call.name,
                response=result.to_response(),
            ))
        return responses

    async def send(self, text: str) -> str:
        """Process one user message and return the model's final reply.

        Raises:
            MaxRoundsExceededError: the model kept calling tools for
                ``max_rounds`` rounds. Partial rounds remain in history.
        """
        self._drain_background()
        await self._maybe_compress()

        self._history.append(Message.user_text(text))

        for round_number in range(1, self.max_rounds + 1):
            self._drain_background()

            reply, calls = await self._stream_round()

            parts: list[Part] = []
            if reply:
                parts.append(TextPart(reply))
            parts.extend(calls)
            if not parts:
                parts.append(TextPart(""))
            self._history.append(Message(role="model", parts=parts))

            if not calls:
                self._drain_background()
                return reply

            logger.info(
                "Executing tool calls",
                round=round_number,
                tools=[call.name for call in calls],
            )
            responses = await self._execute_calls(calls)
            self._history.append(Message(role="tool", parts=responses))

        logger.error("Max rounds exceeded", max_rounds=self.max_rounds)
        raise MaxRoundsExceededError(self.max_rounds)
