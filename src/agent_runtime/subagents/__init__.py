"""
Sub-agents: specialized agents the main conversation can delegate to.
"""

from .registry import (
    SubAgentDefinition,
    SubAgentRegistry,
    create_codebase_investigator,
    create_default_subagent_registry,
)

__all__ = [
    "SubAgentDefinition",
    "SubAgentRegistry",
    "create_codebase_investigator",
    "create_default_subagent_registry",
]
