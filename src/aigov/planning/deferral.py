"""Record tasks that were not selected for execution.

Each deferred task is offered to the issue tracker when requested. Anything
not filed, for whatever reason, ends up in ``DEFERRED_WORK.md`` so deferral
never fails because the tracker is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..registry import ArtifactKind, ArtifactRegistry, Classification
from ..tools.issues import IssueSink, file_issue
from ..utils.files import atomic_write_text
from .schemas import PlanTask

LOGGER = logging.getLogger(__name__)

DEFERRED_WORK_FILENAME = "DEFERRED_WORK.md"


@dataclass(slots=True)
class DeferralOutcome:
    issues: Dict[str, str] = field(default_factory=dict)
    fallback_path: Optional[Path] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def local_only(self) -> bool:
        return not self.issues


def issue_title(task: PlanTask, feature: str) -> str:
    priority = task.priority.value if task.priority else "P?"
    return f"[{priority}] {feature}: {task.name} ({task.id})"


def issue_body(task: PlanTask, feature: str) -> str:
    lines = [
        f"Deferred from the `{feature}` feature plan.",
        "",
        f"- Task: {task.id} {task.name}",
        f"- Category: {task.category.value}",
        f"- Priority: {task.priority.value if task.priority else 'unassigned'}",
        f"- Defer impact: {task.defer_impact}",
        f"- Depends on: {', '.join(task.depends_on) or 'nothing'}",
        f"- Files: {', '.join(task.files) or 'none listed'}",
        f"- Verification: {task.verification or 'manual'}",
        f"- Rollback: {task.rollback or 'n/a'}",
    ]
    if task.description:
        lines.extend(["", task.description.strip()])
    return "\n".join(lines) + "\n"


def render_deferred_work(tasks: Sequence[PlanTask], feature: str, reasons: Sequence[str]) -> str:
    lines = [
        "# Deferred Work",
        "",
        f"Feature: {feature}",
        "",
    ]
    if reasons:
        lines.extend(["Not filed as issues:", ""])
        lines.extend(f"- {reason}" for reason in dict.fromkeys(reasons))
        lines.append("")
    for task in tasks:
        lines.extend([f"## {task.id}: {task.name}", "", issue_body(task, feature)])
    return "\n".join(lines)


def defer_tasks(
    tasks: Sequence[PlanTask],
    *,
    run_dir: Path,
    feature: str,
    registry: ArtifactRegistry,
    session_id: str,
    sink: Optional[IssueSink] = None,
    use_issues: bool = False,
    labels: Sequence[str] = (),
    dry_run: bool = False,
) -> DeferralOutcome:
    """File each task as an issue when ``use_issues``; write the rest locally."""
    outcome = DeferralOutcome()
    if not tasks:
        return outcome

    unfiled: List[PlanTask] = []
    for task in tasks:
        if not use_issues or dry_run:
            unfiled.append(task)
            continue
        url, reason = file_issue(sink, issue_title(task, feature), issue_body(task, feature), labels)
        if url:
            outcome.issues[task.id] = url
            LOGGER.debug("Deferred task %s to %s", task.id, url)
        else:
            LOGGER.warning("Could not file task %s as an issue: %s", task.id, reason)
            outcome.reasons.append(reason or "issue creation failed")
            unfiled.append(task)

    if unfiled:
        path = run_dir / DEFERRED_WORK_FILENAME
        atomic_write_text(path, render_deferred_work(unfiled, feature, outcome.reasons))
        registry.register_artifact(session_id, path, ArtifactKind.FILE, "defer", Classification.C)
        outcome.fallback_path = path
    return outcome


__all__ = [
    "DEFERRED_WORK_FILENAME",
    "DeferralOutcome",
    "defer_tasks",
    "issue_body",
    "issue_title",
    "render_deferred_work",
]
