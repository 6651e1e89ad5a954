"""Agent adapter that shells out to the ``claude`` command-line tool."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

from .agent import AgentClient, AgentResult, AgentUnavailableError

__all__ = ["ClaudeCliAgent"]


class ClaudeCliAgent(AgentClient):
    """Run prompts headlessly through ``claude -p`` inside the repository."""

    name = "claude-cli"

    def __init__(
        self,
        repo_root: Path | str,
        *,
        command: str = "claude",
        extra_args: Sequence[str] = (),
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self.command = command
        self.extra_args = list(extra_args)

    @classmethod
    def from_config(cls, config: Mapping[str, Any], repo_root: Path | str) -> "ClaudeCliAgent":
        agent_cfg = config.get("agent") or {}
        command = str(agent_cfg.get("command") or "claude")
        extra_args = [str(item) for item in agent_cfg.get("extra_args") or []]
        return cls(repo_root, command=command, extra_args=extra_args)

    @property
    def available(self) -> bool:
        return shutil.which(self.command) is not None

    def _run(self, prompt: str, capabilities: list[str], metadata: Dict[str, Any]) -> AgentResult:
        executable = shutil.which(self.command)
        if executable is None:
            raise AgentUnavailableError(f"Executable not available: {self.command}")

        command = [executable, "-p", prompt]
        if capabilities:
            command.extend(["--allowedTools", ",".join(capabilities)])
        command.extend(self.extra_args)
        try:
            process = subprocess.run(  # noqa: S603 - executable resolved from configuration
                command,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as error:
            raise AgentUnavailableError(f"Failed to start {self.command}: {error}") from error

        transcript = process.stdout
        if process.stderr:
            transcript = f"{transcript}\n{process.stderr}" if transcript else process.stderr
        return AgentResult(transcript=transcript, exit_status=process.returncode, metadata=metadata)
