"""Convenience exports for agent client implementations."""

from .agent import AgentClient, AgentError, AgentResult, AgentUnavailableError
from .claude_cli import ClaudeCliAgent

__all__ = [
    "AgentClient",
    "AgentError",
    "AgentResult",
    "AgentUnavailableError",
    "ClaudeCliAgent",
]
