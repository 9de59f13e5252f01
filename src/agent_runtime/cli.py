"""
Command-line interface for agent-runtime.
"""

import argparse
import asyncio
import sys

import structlog

from .config import Settings, get_settings
from .events import (
    BackgroundTaskComplete,
    BackgroundTaskStarted,
    CompressedEvent,
    EventBus,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
)
from .exceptions import MaxRoundsExceededError

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

HELP_TEXT = """Commands:
  /tasks        List background tasks
  /kill <id>    Kill a background task
  /clear        Start a new conversation
  /help         Show this help
  /exit         Quit (running background tasks are killed)"""


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="agent-runtime",
        description="agent-runtime - An interactive coding agent with background tasks",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Start an interactive chat session")
    chat_parser.add_argument("--provider", help="LLM provider to use (default: DEFAULT_PROVIDER)")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "chat":
        asyncio.run(run_chat(args.provider))
    elif args.command == "config":
        show_config(args.check)
    else:
        parser.print_help()


def attach_printer(events: EventBus) -> None:
    """Render engine and background events on stdout."""

    def on_delta(event: TextDelta) -> None:
        print(event.delta, end="", flush=True)

    def on_tool_call(event: ToolCallEvent) -> None:
        print(f"\n[{event.name}] {event.args}", flush=True)

    def on_tool_result(event: ToolResultEvent) -> None:
        first_line = event.output.splitlines()[0] if event.output else ""
        marker = "error" if event.is_error else "ok"
        print(f"  -> {marker}: {first_line[:200]}", flush=True)

    def on_compressed(event: CompressedEvent) -> None:
        print(f"\n[context compressed: {event.from_tokens} -> {event.to_tokens} tokens]", flush=True)

    def on_task_started(event: BackgroundTaskStarted) -> None:
        print(f"\n[background] started {event.task.task_id}: {event.task.summary}", flush=True)

    def on_task_complete(event: BackgroundTaskComplete) -> None:
        print(f"\n[background] {event.task.task_id} {event.task.status.value}", flush=True)

    events.subscribe(TextDelta, on_delta)
    events.subscribe(ToolCallEvent, on_tool_call)
    events.subscribe(ToolResultEvent, on_tool_result)
    events.subscribe(CompressedEvent, on_compressed)
    events.subscribe(BackgroundTaskStarted, on_task_started)
    events.subscribe(BackgroundTaskComplete, on_task_complete)


def open_runtime(provider: str | None = None, settings: Settings | None = None):
    """Build the chat runtime, or return None after printing why it can't start."""
    from .llm.factory import create_llm
    from .runtime import create_runtime

    settings = settings or get_settings()
    if not settings.has_llm_key:
        print("No LLM API key configured. Set ANTHROPIC_API_KEY (or another provider key) in .env")
        return None

    try:
        llm = create_llm(settings, provider)
    except ValueError as e:
        print(f"Cannot start chat: {e}")
        return None

    return create_runtime(settings=settings, llm=llm)


async def run_turn(runtime, line: str) -> None:
    """Send one user line. Failures are reported and the session goes on."""
    try:
        await runtime.engine.send(line)
        print()
    except MaxRoundsExceededError as e:
        print(f"\n{e}")
    except Exception as e:
        logger.error("Turn failed", error=str(e), exc_info=True)
        print(f"\nError: {e}")


async def run_chat(provider: str | None = None) -> None:
    """Run the interactive chat loop."""
    runtime = open_runtime(provider)
    if runtime is None:
        sys.exit(1)
    attach_printer(runtime.events)

    print(f"agent-runtime ({runtime.llm.provider_name}: {runtime.llm.model}). Type /help for commands.\n")

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue

            if line.startswith("/"):
                if not handle_command(runtime, line):
                    break
                continue

            await run_turn(runtime, line)
    except KeyboardInterrupt:
        pass
    finally:
        killed = runtime.shutdown()
        if killed:
            print(f"Killed {killed} background task(s).")


def handle_command(runtime, line: str) -> bool:
    """Handle a slash command. Returns False to exit."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command in ("/exit", "/quit"):
        return False

    if command == "/help":
        print(HELP_TEXT)
    elif command == "/clear":
        runtime.engine.clear()
        print("Conversation cleared.")
    elif command == "/tasks":
        tasks = runtime.background.list()
        if not tasks:
            print("No background tasks.")
        for task in tasks:
            print(f"{task.task_id:<14} {task.status.value:<10} {round(task.elapsed_seconds):>5}s  {task.summary[:60]}")
    elif command == "/kill":
        if not argument:
            print("Usage: /kill <task_id>")
        elif runtime.background.kill(argument):
            print(f"Killed {argument}.")
        else:
            print(f"No running task {argument}.")
    else:
        print(f"Unknown command: {command}. Type /help for commands.")

    return True


def show_config(check: bool) -> None:
    """Show current configuration."""
    settings = get_settings()

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== agent-runtime Configuration ===\n")

    print("LLM Providers:")
    print(f"  Default: {settings.default_provider}")
    print(f"  Default Model: {settings.default_model or '(provider default)'}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  Google Key: {mask(settings.google_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")

    print("\nConversation:")
    print(f"  Max Rounds: {settings.max_rounds}")
    print(f"  Context Limit: {settings.model_context_limit} tokens")
    print(f"  Compression Threshold: {settings.compression_threshold}")
    print(f"  Preserved Fraction: {settings.compression_preserve_fraction}")
    print(f"  Tool Output Budget: {settings.function_response_token_budget} tokens")

    print("\nTools:")
    print(f"  Workspace: {settings.workspace_dir or '(current directory)'}")
    print(f"  Shell Timeout: {settings.shell_timeout_seconds}s")

    if check:
        print("\n=== Configuration Check ===\n")
        errors = []
        warnings = []

        if not settings.has_llm_key:
            errors.append("At least one LLM API key is required")

        if not settings.get_llm_config().api_key:
            warnings.append(f"No API key for the default provider ({settings.default_provider})")

        if errors:
            print("❌ Errors:")
            for e in errors:
                print(f"   - {e}")

        if warnings:
            print("⚠️  Warnings:")
            for w in warnings:
                print(f"   - {w}")

        if not errors and not warnings:
            print("✅ Configuration looks good!")
        elif not errors:
            print("\n✅ Configuration is valid (with warnings)")
        else:
            print("\n❌ Configuration has errors - fix them before starting")


if __name__ == "__main__":
    main()
