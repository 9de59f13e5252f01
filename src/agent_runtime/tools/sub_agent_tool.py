"""
Sub-agent tool - delegate a task to a specialized agent.

The sub-agent runs in a fresh conversation with its own system prompt,
its own round limit and a restricted copy of the parent's tools. It never
receives the sub_agent tool itself, so delegation cannot recurse.
"""

from typing import Any

import structlog

from ..agent.core import ConversationEngine
from ..background.manager import BackgroundTaskManager
from ..config import Settings, get_settings
from ..events import EventBus
from ..llm.base import BaseLLM
from ..llm.factory import create_llm
from ..subagents.registry import SubAgentDefinition, SubAgentRegistry
from .base import BaseTool, ToolResult
from .registry import ToolRegistry

logger = structlog.get_logger()

SUB_AGENT_TOOL_NAME = "sub_agent"


class SubAgentTool(BaseTool):
    """Tool that hands a task to a named sub-agent and returns its report."""

    def __init__(
        self,
        subagents: SubAgentRegistry,
        parent_registry: ToolRegistry,
        llm: BaseLLM,
        events: EventBus | None = None,
        background: BackgroundTaskManager | None = None,
        settings: Settings | None = None,
        workspace_dir: str | None = None,
    ):
        self.subagents = subagents
        self.parent_registry = parent_registry
        self.llm = llm
        self.events = events
        self.background = background
        self.settings = settings or get_settings()
        self.workspace_dir = workspace_dir

    @property
    def name(self) -> str:
        return SUB_AGENT_TOOL_NAME

    @property
    def description(self) -> str:
        agent_list = "\n".join(
            f"- {agent.name}: {agent.description}" for agent in self.subagents.list()
        )
        return f"Delegate a task to a specialized sub-agent. Available agents:\n{agent_list}"

    @property
    def parameters(self) -> dict[str, Any]:
        properties: dict[str, Any] = {
            "agent_name": {
                "type": "string",
                "description": "The name of the sub-agent to delegate the task to",
                "enum": [agent.name for agent in self.subagents.list()],
            },
            "task": {
                "type": "string",
                "description": (
                    "A detailed description of the task for the sub-agent to perform. "
                    "Include all necessary context, file paths, and requirements."
                ),
            },
        }
        if self.background is not None:
            properties["run_in_background"] = {
                "type": "boolean",
                "description": (
                    "Run the sub-agent as a background task and return its task id "
                    "immediately (default: false)"
                ),
            }
        return {
            "type": "object",
            "properties": properties,
            "required": ["agent_name", "task"],
        }

    def display_args(self, args: dict[str, Any]) -> str:
        task = str(args.get("task", ""))
        if len(task) > 80:
            task = task[:80] + "..."
        return f"{args.get('agent_name', '')}: {task}"

    def _build_engine(self, definition: SubAgentDefinition) -> ConversationEngine:
        llm = self.llm
        if definition.model:
            llm = create_llm(self.settings, definition.model)

        return ConversationEngine(
            llm=llm,
            tool_registry=self.parent_registry.subset(
                definition.tools, exclude={SUB_AGENT_TOOL_NAME}
            ),
            system_prompt=definition.system_prompt,
            events=self.events,
            background=None,
            max_rounds=definition.max_turns,
            workspace_dir=self.workspace_dir,
            settings=self.settings,
        )

    async def execute(
        self,
        agent_name: str,
        task: str,
        run_in_background: bool = False,
    ) -> ToolResult:
        """Run the sub-agent in the foreground or as a background computation."""
        definition = self.subagents.get(agent_name)
        if definition is None:
            return ToolResult(success=False, error=f'Sub-agent "{agent_name}" not found')

        try:
            engine = self._build_engine(definition)
        except ValueError as e:
            return ToolResult(
                success=False,
                error=f'Failed to switch to model "{definition.model}": {e}',
            )

        if run_in_background:
            if self.background is None:
                return ToolResult(success=False, error="Background execution is not available")
            task_id = self.background.start_computation(
                engine.send(task),
                label=definition.name,
                description=self.display_args({"agent_name": agent_name, "task": task}),
            )
            return ToolResult(
                success=True,
                data={"agent": definition.name, "task_id": task_id, "status": "running"},
                output=f"[SubAgent:{definition.name}] started as {task_id}",
            )

        logger.info("Sub-agent started", agent=definition.name, max_turns=definition.max_turns)
        try:
            result = await engine.send(task)
        except Exception as e:
            logger.error("Sub-agent failed", agent=definition.name, error=str(e))
            return ToolResult(
                success=False,
                error=f"[SubAgent:{definition.name}] {e}",
            )

        logger.info("Sub-agent completed", agent=definition.name)
        return ToolResult(
            success=True,
            data={"agent": definition.name, "result": result},
            output=f"[SubAgent:{definition.name}] completed",
        )


def create_sub_agent_tool(
    subagents: SubAgentRegistry,
    parent_registry: ToolRegistry,
    llm: BaseLLM,
    events: EventBus | None = None,
    background: BackgroundTaskManager | None = None,
    settings: Settings | None = None,
    workspace_dir: str | None = None,
) -> SubAgentTool:
    """Create the sub_agent tool over a parent registry."""
    return SubAgentTool(
        subagents=subagents,
        parent_registry=parent_registry,
        llm=llm,
        events=events,
        background=background,
        settings=settings,
        workspace_dir=workspace_dir,
    )
