"""
agent-runtime - an interactive coding agent with context compression and
background tasks.
"""

__version__ = "0.1.0"
