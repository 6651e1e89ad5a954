"""Client base class for the external coding agent invoked by each phase."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

__all__ = [
    "AgentClient",
    "AgentError",
    "AgentResult",
    "AgentUnavailableError",
]


class AgentError(RuntimeError):
    """Base error raised when the agent cannot complete an invocation."""


class AgentUnavailableError(AgentError):
    """Raised when the agent tool is not installed or cannot be started."""


@dataclass(slots=True)
class AgentResult:
    """Transcript and exit status returned by one agent invocation."""

    transcript: str
    exit_status: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class AgentClient:
    """Opaque prompt-in, side-effects-out collaborator.

    Subclasses implement :meth:`_run`; a non-zero ``exit_status`` is a failure
    of the calling phase only.
    """

    name = "agent"

    def invoke(
        self,
        prompt: str,
        capabilities: Sequence[str],
        *,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AgentResult:
        """Run ``prompt`` with the given tool permissions."""
        if not prompt.strip():
            raise AgentError("Refusing to invoke the agent with an empty prompt.")
        return self._run(prompt, list(capabilities), dict(metadata or {}))

    def _run(self, prompt: str, capabilities: list[str], metadata: Dict[str, Any]) -> AgentResult:
        """Perform the invocation. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _run().")
