"""
Runtime assembly.

Wires one event bus, model backend, background task manager, tool registry
and conversation engine together. Everything is constructed explicitly and
passed down; nothing is a module-level singleton.
"""

from dataclasses import dataclass
from pathlib import Path

import structlog

from .agent.core import ConversationEngine, DEFAULT_SYSTEM_PROMPT
from .background.manager import BackgroundTaskManager
from .config import Settings, get_settings
from .events import EventBus
from .llm.base import BaseLLM
from .llm.factory import create_llm
from .subagents.registry import SubAgentRegistry, create_default_subagent_registry
from .tools.file_tool import create_file_tools
from .tools.registry import ToolRegistry
from .tools.shell_tool import ShellConfig, create_shell_tools
from .tools.sub_agent_tool import create_sub_agent_tool

logger = structlog.get_logger()


@dataclass
class AgentRuntime:
    """The assembled collaborators of one interactive session."""

    settings: Settings
    events: EventBus
    llm: BaseLLM
    background: BackgroundTaskManager
    tools: ToolRegistry
    subagents: SubAgentRegistry
    engine: ConversationEngine

    def shutdown(self) -> int:
        """Detach the engine and kill running background tasks."""
        self.engine.close()
        killed = self.background.kill_all()
        if killed:
            logger.info("Killed background tasks on shutdown", count=killed)
        return killed


def create_runtime(
    settings: Settings | None = None,
    llm: BaseLLM | None = None,
    subagents: SubAgentRegistry | None = None,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> AgentRuntime:
    """Build a runtime from settings.

    Must be called from a running event loop if background tasks will be
    started.
    """
    settings = settings or get_settings()
    workspace = str(Path(settings.workspace_dir or Path.cwd()).expanduser().resolve())

    events = EventBus()
    llm = llm or create_llm(settings)
    background = BackgroundTaskManager(events=events, cwd=workspace)
    subagents = subagents if subagents is not None else create_default_subagent_registry()

    tools = ToolRegistry()
    for tool in create_file_tools(workspace):
        tools.register(tool)

    shell_config = ShellConfig(
        timeout_seconds=settings.shell_timeout_seconds,
        max_output_chars=settings.shell_max_output_chars,
        workspace_dir=workspace,
    )
    for tool in create_shell_tools(shell_config, background):
        tools.register(tool)

    if not subagents.is_empty():
        tools.register(create_sub_agent_tool(
            subagents=subagents,
            parent_registry=tools,
            llm=llm,
            events=events,
            background=background,
            settings=settings,
            workspace_dir=workspace,
        ))

    engine = ConversationEngine(
        llm=llm,
        tool_registry=tools,
        system_prompt=system_prompt,
        events=events,
        background=background,
        workspace_dir=workspace,
        settings=settings,
    )

    logger.info(
        "Runtime ready",
        provider=llm.provider_name,
        model=llm.model,
        workspace=workspace,
        tools=tools.list_tools(),
    )

    return AgentRuntime(
        settings=settings,
        events=events,
        llm=llm,
        background=background,
        tools=tools,
        subagents=subagents,
        engine=engine,
    )
