"""Incrementally maintained markdown report for one pipeline session.

The report is created and registered as soon as the session starts and is
rewritten after every phase, so an interrupted run still leaves a file naming
the session id that ``aigov cleanup --session`` needs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..registry import ArtifactKind, ArtifactRegistry, Classification
from ..utils.files import atomic_write_text

LOGGER = logging.getLogger(__name__)

__all__ = ["PhaseRecord", "RunSummary"]


@dataclass(slots=True)
class PhaseRecord:
    name: str
    status: str
    note: str = ""


@dataclass(slots=True)
class RunSummary:
    """Mutable run report persisted to ``<scratch>/run-<session>.md``."""

    session_id: str
    script: str
    path: Path
    repo_root: Path
    status: str = "active"
    phases: List[PhaseRecord] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    events: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def start(
        cls,
        registry: ArtifactRegistry,
        session_id: str,
        script: str,
        *,
        scratch_dir: Path,
    ) -> "RunSummary":
        """Write the initial report and register it as the session's first artifact."""
        summary = cls(
            session_id=session_id,
            script=script,
            path=scratch_dir / f"run-{session_id}.md",
            repo_root=registry.repo_root,
        )
        summary.write()
        registry.register_artifact(session_id, summary.path, ArtifactKind.FILE, "run-summary", Classification.C)
        return summary

    # ------------------------------------------------------------ recording
    def phase(self, name: str, status: str, note: str = "") -> None:
        self.phases.append(PhaseRecord(name=name, status=status, note=note))
        self.write()

    def count(self, key: str, amount: int = 1) -> None:
        self.counts[key] = self.counts.get(key, 0) + amount

    def event(self, message: str) -> None:
        self.events.append(message)

    def failure(self, message: str) -> None:
        LOGGER.warning("%s", message)
        self.failures.append(message)
        self.write()

    def warning(self, message: str) -> None:
        LOGGER.info("%s", message)
        self.warnings.append(message)
        self.write()

    def finish(self, status: str) -> None:
        self.status = status
        self.write()

    # ------------------------------------------------------------- rendering
    def render(self) -> str:
        lines = [
            f"# Run Summary: {self.script}",
            "",
            f"**Session**: `{self.session_id}`",
            f"**Repository**: `{self.repo_root.as_posix()}`",
            f"**Started**: {self.started_at}",
            f"**Status**: {self.status}",
            "",
            "## Phases",
            "",
        ]
        if self.phases:
            lines.extend(
                f"- {record.name}: {record.status}" + (f" ({record.note})" if record.note else "")
                for record in self.phases
            )
        else:
            lines.append("- (no phases finished yet)")
        if self.counts:
            lines.extend(["", "## Counts", "", "| Category | Count |", "|----------|-------|"])
            lines.extend(f"| {key} | {value} |" for key, value in sorted(self.counts.items()))
        for title, entries in (("Actions", self.events), ("Failures", self.failures), ("Warnings", self.warnings)):
            if entries:
                lines.extend(["", f"## {title}", ""])
                lines.extend(f"- {entry}" for entry in entries)
        lines.extend(
            [
                "",
                "## Cleanup",
                "",
                f"Remove everything this session produced with `aigov cleanup --session {self.session_id}`.",
                "",
            ]
        )
        return "\n".join(lines)

    def write(self) -> Optional[Path]:
        try:
            atomic_write_text(self.path, self.render())
        except OSError as error:
            LOGGER.warning("Failed to write run summary %s: %s", self.path, error)
            return None
        return self.path
