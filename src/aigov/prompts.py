"""Prompt templates and helpers shared by the planning stages."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Sequence

from .phases import AGENT_STAGE_OUTPUTS, PlanningStage

BUNDLE_PROMPTS_DIR = "prompts"

STAGE_TEMPLATES = {
    PlanningStage.EXECUTE_RESEARCH: (
        "Answer the research question below by reading the repository and any documentation it points to. "
        "Do not modify files other than the output file. Cite file paths for every claim and finish with a "
        "short list of open questions."
    ),
    PlanningStage.UNDERSTAND_REQUEST: (
        "Restate the user request in your own words. List the goals, the explicit constraints, the implicit "
        "assumptions and anything ambiguous that a reviewer should confirm before work starts."
    ),
    PlanningStage.RESEARCH_CODEBASE: (
        "Survey the repository for code, configuration and tests the request touches. Name each relevant file "
        "with a one-line note on why it matters and call out existing patterns the change should follow."
    ),
    PlanningStage.RESEARCH_DOCS: (
        "Collect the documentation, governance rules and external references relevant to the request. "
        "Summarise the rules the implementation must respect."
    ),
    PlanningStage.VALIDATE_APPROACH: (
        "Challenge the request. Decide whether it should proceed as described, proceed with caveats, or be "
        "blocked because it is unsafe, redundant or contradicts existing rules. The first line of the output "
        "file must be exactly one of `Verdict: PROCEED`, `Verdict: WARN` or `Verdict: BLOCK`, followed by the "
        "reasoning."
    ),
    PlanningStage.GENERATE_FEATURE_SPEC: (
        "Write the feature description: user story, scope, out-of-scope items and testable acceptance criteria."
    ),
    PlanningStage.GENERATE_DESIGN_RECORD: (
        "Write the design record: context, the chosen approach, alternatives considered, risks and the "
        "verification strategy."
    ),
    PlanningStage.DECOMPOSE_TASKS: (
        "Decompose the design into atomic tasks and write them as JSON of the form "
        '{"tasks": [{"id", "name", "category", "depends_on", "files", "estimated_lines", "verification", '
        '"rollback", "description"}]}. Each task touches at most two files and about fifty lines. '
        "Categories are SETUP, IMPLEMENT, INTEGRATE, CONFIGURE, VALIDATE, DOCUMENT and CLEANUP. "
        "Dependencies must reference existing ids and must not form cycles. Write `verification` as "
        "`run: <command>` when it can be executed; anything else is treated as a manual check. "
        "Optionally add `priority` (P0-P3), `defer_safe` and `defer_impact`."
    ),
}

QUESTION_KEYWORDS = {
    "comparison": ("compare", "comparison", " vs ", "versus", "difference between", "better than", "alternative"),
    "documentation": ("documentation", "docs", "readme", "guide", "how do i", "how to", "rule", "policy"),
    "codebase": ("where", "which file", "function", "class", "module", "implemented", "code", "call", "test"),
}


def classify_question(question: str) -> str:
    """Classify a research question as codebase, documentation, comparison or general."""
    text = f" {question.lower()} "
    for category in ("comparison", "documentation", "codebase"):
        if any(keyword in text for keyword in QUESTION_KEYWORDS[category]):
            return category
    return "general"


def find_bundle_prompt(bundle_dir: Optional[Path], stage: PlanningStage) -> Optional[Path]:
    """Return the bundle prompt file whose name mentions ``stage``, if any."""
    if bundle_dir is None:
        return None
    prompts_dir = bundle_dir / BUNDLE_PROMPTS_DIR
    if not prompts_dir.is_dir():
        return None
    matches = sorted(prompts_dir.glob(f"*{stage.value}*.md"))
    if not matches:
        # Bundles name prompt files with hyphens (``04-validate-approach.md``).
        matches = sorted(prompts_dir.glob(f"*{stage.value.replace('_', '-')}*.md"))
    return matches[0] if matches else None


def render_context_block(
    *,
    stage: PlanningStage,
    request: str,
    run_dir: Path,
    repo_root: Path,
    inputs: Iterable[str] = (),
    extra: Sequence[str] = (),
) -> str:
    output_name = AGENT_STAGE_OUTPUTS.get(stage)
    lines = [
        "## Context",
        f"- Stage: `{stage.value}`",
        f"- Repository: {repo_root.as_posix()}",
        f"- Run directory: {run_dir.as_posix()}",
    ]
    if output_name:
        lines.append(f"- Write your result to: {(run_dir / output_name).as_posix()}")
    available = [name for name in inputs if (run_dir / name).exists()]
    if available:
        lines.append("- Earlier outputs: " + ", ".join(f"`{name}`" for name in available))
    lines.extend(f"- {line}" for line in extra)
    lines.extend(["", "## Request", request.strip() or "(empty request)"])
    return "\n".join(lines)


def render_stage_prompt(
    stage: PlanningStage,
    *,
    request: str,
    run_dir: Path,
    repo_root: Path,
    bundle_dir: Optional[Path] = None,
    extra: Sequence[str] = (),
) -> str:
    """Render the prompt for ``stage`` from the bundle file or the built-in template."""
    bundle_prompt = find_bundle_prompt(bundle_dir, stage)
    if bundle_prompt is not None:
        body = bundle_prompt.read_text(encoding="utf-8").strip()
    else:
        body = f"# {stage.value.replace('_', ' ').title()}\n\n{STAGE_TEMPLATES.get(stage, '')}".strip()
    context = render_context_block(
        stage=stage,
        request=request,
        run_dir=run_dir,
        repo_root=repo_root,
        inputs=AGENT_STAGE_OUTPUTS.values(),
        extra=extra,
    )
    return f"{body}\n\n{context}\n"


def render_task_prompt(task, *, run_dir: Path, repo_root: Path) -> str:
    """Render the prompt that asks the agent to implement a single planned task."""
    files = ", ".join(task.files) or "(none listed)"
    lines = [
        f"# Task {task.id}: {task.name}",
        "",
        f"Implement only this task. Touch at most these files: {files}.",
    ]
    if task.description:
        lines.extend(["", task.description.strip()])
    lines.extend(
        [
            "",
            "## Constraints",
            f"- Category: {task.category.value}",
            f"- Keep the change to about {task.estimated_lines} lines.",
            f"- Verification: {task.verification or 'manual review'}",
            f"- Rollback: {task.rollback or 'revert the touched files'}",
            "",
            "## Context",
            f"- Repository: {repo_root.as_posix()}",
            f"- Design documents: {(run_dir / 'FEATURE.md').as_posix()}, {(run_dir / 'PDR.md').as_posix()}",
            "",
        ]
    )
    return "\n".join(lines)


__all__ = [
    "QUESTION_KEYWORDS",
    "STAGE_TEMPLATES",
    "classify_question",
    "find_bundle_prompt",
    "render_context_block",
    "render_stage_prompt",
    "render_task_prompt",
]
