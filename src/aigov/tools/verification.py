"""Run a task's verification step when it names an executable command.

Only explicitly marked commands run: a ``run:`` or ``$ `` prefix, or the first
backticked span. Anything else is a manual check.
"""

from __future__ import annotations

import re
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

VerificationStatus = Literal["passed", "failed", "manual"]

_PREFIXES = ("run:", "$ ")
_BACKTICKS = re.compile(r"`([^`]+)`")


@dataclass(slots=True)
class VerificationCheck:
    """A free-form verification string; only marked commands on ``PATH`` are executed."""

    description: str

    def command_text(self) -> str | None:
        text = self.description.strip()
        for prefix in _PREFIXES:
            if text.lower().startswith(prefix):
                return text[len(prefix):].strip() or None
        match = _BACKTICKS.search(text)
        if match:
            return match.group(1).strip() or None
        return None

    def command(self) -> list[str] | None:
        text = self.command_text()
        if text is None:
            return None
        try:
            tokens = shlex.split(text)
        except ValueError:
            return None
        if not tokens or shutil.which(tokens[0]) is None:
            return None
        return tokens

    def run(self, cwd: Path) -> "VerificationResult":
        tokens = self.command()
        if tokens is None:
            return VerificationResult(description=self.description, status="manual", exit_code=None, output="")

        process = subprocess.run(  # noqa: S602  # verification text comes from the task plan
            self.command_text(),
            shell=True,
            cwd=cwd,
            check=False,
            capture_output=True,
            text=True,
        )
        status: VerificationStatus = "passed" if process.returncode == 0 else "failed"
        output = "\n".join(part for part in (process.stdout, process.stderr) if part)
        return VerificationResult(
            description=self.description,
            status=status,
            exit_code=process.returncode,
            output=output,
        )


@dataclass(slots=True)
class VerificationResult:
    description: str
    status: VerificationStatus
    exit_code: int | None
    output: str

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def short_message(self) -> str:
        if self.status == "manual":
            return f"manual check: {self.description or 'none given'}"
        if self.status == "passed":
            return "verification passed"
        lines = self.output.strip().splitlines()
        return f"verification failed ({lines[-1] if lines else f'exit code {self.exit_code}'})"


__all__ = ["VerificationCheck", "VerificationResult", "VerificationStatus"]
