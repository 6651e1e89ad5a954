"""Issue tracker integration used to park deferred work."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any, Mapping, Sequence

LOGGER = logging.getLogger(__name__)

__all__ = ["GhIssueSink", "IssueSink", "IssueSinkError", "IssueSinkUnavailable", "file_issue"]


class IssueSinkError(RuntimeError):
    """Raised when the issue tracker rejects or fails a request."""


class IssueSinkUnavailable(IssueSinkError):
    """Raised when the issue tracker tool is not installed."""


class IssueSink:
    """Accepts a title, body and labels and returns the created issue URL."""

    name = "issues"

    def create_issue(self, title: str, body: str, labels: Sequence[str] = ()) -> str:
        raise NotImplementedError("Subclasses must implement create_issue().")


class GhIssueSink(IssueSink):
    """Create GitHub issues through ``gh issue create``."""

    name = "gh"

    def __init__(self, repo_root: Path | str, *, command: str = "gh") -> None:
        self.repo_root = Path(repo_root).resolve()
        self.command = command

    @classmethod
    def from_config(cls, config: Mapping[str, Any], repo_root: Path | str) -> "GhIssueSink":
        issues_cfg = config.get("issues") or {}
        return cls(repo_root, command=str(issues_cfg.get("command") or "gh"))

    def create_issue(self, title: str, body: str, labels: Sequence[str] = ()) -> str:
        executable = shutil.which(self.command)
        if executable is None:
            raise IssueSinkUnavailable(f"Executable not available: {self.command}")

        label_args: list[str] = []
        for label in labels:
            label_args.extend(["--label", label])

        try:
            result = subprocess.run(  # noqa: S603 - executable resolved from configuration
                [executable, "issue", "create", "--title", title, "--body", body, *label_args],
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as error:
            raise IssueSinkUnavailable(f"Failed to start {self.command}: {error}") from error

        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
            raise IssueSinkError(f"{self.command} issue create failed: {message}")

        url = result.stdout.strip().splitlines()[-1].strip() if result.stdout.strip() else ""
        if not url:
            raise IssueSinkError(f"{self.command} issue create returned no issue URL")
        return url


def file_issue(
    sink: IssueSink | None,
    title: str,
    body: str,
    labels: Sequence[str] = (),
) -> tuple[str | None, str | None]:
    """Try to create an issue; return ``(url, None)`` or ``(None, reason)``.

    Never raises for tracker problems so callers can always fall back to a
    local file.
    """
    if sink is None:
        return None, "no issue tracker configured"
    try:
        return sink.create_issue(title, body, labels), None
    except IssueSinkUnavailable as error:
        return None, f"issue tracker unavailable: {error}"
    except IssueSinkError as error:
        return None, f"issue creation failed: {error}"
    except Exception as error:  # noqa: BLE001
        LOGGER.warning("Issue sink %s crashed: %s", getattr(sink, "name", sink), error)
        return None, f"issue creation failed: {error}"
