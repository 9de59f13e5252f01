"""
Sub-agent definitions and the registry that holds them.
"""

from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

DEFAULT_SUB_AGENT_MAX_TURNS = 20


@dataclass
class SubAgentDefinition:
    """A specialized agent the main agent can delegate to.

    ``tools=None`` allows every parent tool except ``sub_agent`` itself.
    ``model`` names a provider to use instead of the parent's model.
    """

    name: str
    description: str
    system_prompt: str
    tools: list[str] | None = None
    model: str | None = None
    max_turns: int = DEFAULT_SUB_AGENT_MAX_TURNS


class SubAgentRegistry:
    """Named sub-agent definitions. Later registrations replace earlier ones."""

    def __init__(self) -> None:
        self._agents: dict[str, SubAgentDefinition] = {}

    def register(self, definition: SubAgentDefinition) -> None:
        if definition.name in self._agents:
            logger.info("Sub-agent definition replaced", agent=definition.name)
        self._agents[definition.name] = definition

    def get(self, name: str) -> SubAgentDefinition | None:
        return self._agents.get(name)

    def list(self) -> list[SubAgentDefinition]:
        return list(self._agents.values())

    def is_empty(self) -> bool:
        return not self._agents


CODEBASE_INVESTIGATOR_SYSTEM_PROMPT = """You are **Codebase Investigator**, a specialized sub-agent and an expert in reverse-engineering software projects.

Your only purpose is to build a complete mental model of the code relevant to a given investigation and report it back to the agent that invoked you.

- **DO:** Find the key modules, classes and functions involved in the problem and its solution.
- **DO:** Understand why the code is written the way it is.
- **DO:** Trace the ripple effects of a change. If a function is modified, check its callers. If a data structure changes, find where its definitions must be updated.
- **DO:** Conclude with insights for the main agent: the root cause of a bug and how to fix it, or where and how a new feature should be implemented.
- **DO NOT:** Write the final implementation yourself.
- **DO NOT:** Stop at the first relevant file.

You operate in a non-interactive loop and must reason from the information provided and the output of your tools.

Keep a <scratchpad> with a checklist of investigation goals, open questions and key findings, and update it after every tool result. You are done only when no open questions remain.

Finish with a structured report in this JSON format:

```json
{
  "SummaryOfFindings": "Conclusions and insights for the main agent.",
  "ExplorationTrace": ["Step 1: ...", "Step 2: ..."],
  "RelevantLocations": [
    {
      "FilePath": "path/to/file.py",
      "Reasoning": "Why this file matters.",
      "KeySymbols": ["function_name", "ClassName"]
    }
  ]
}
```"""


def create_codebase_investigator() -> SubAgentDefinition:
    """Built-in read-only agent for codebase analysis."""
    return SubAgentDefinition(
        name="codebase_investigator",
        description=(
            "The specialized tool for codebase analysis, architectural mapping, and "
            "understanding system-wide dependencies. Invoke it for vague requests, "
            "bug root-cause analysis, system refactoring, or questions about the "
            "codebase that require investigation. It returns a structured report "
            "with key file paths, symbols, and architectural insights."
        ),
        system_prompt=CODEBASE_INVESTIGATOR_SYSTEM_PROMPT,
        tools=["read_file", "read_folder", "run_shell_command"],
        max_turns=DEFAULT_SUB_AGENT_MAX_TURNS,
    )


def create_default_subagent_registry() -> SubAgentRegistry:
    """A registry holding the built-in sub-agents."""
    registry = SubAgentRegistry()
    registry.register(create_codebase_investigator())
    return registry
