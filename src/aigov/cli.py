"""Command line interface for aigov."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import typer

from .alignment import (
    AlignmentOptions,
    AlignmentPipeline,
    AlignmentReport,
    defer_alignment,
    locate_reference,
)
from .config import DEFAULT_CONFIG_NAME, ConfigError, load_config, section
from .models.agent import AgentClient, AgentResult
from .models.claude_cli import ClaudeCliAgent
from .phases import PlanningStage
from .planning import (
    PlanningOptions,
    PlanningOutcome,
    PlanningPipeline,
    TaskPlan,
    ValidationGateError,
)
from .registry import ArtifactRegistry, CleanupEntry, CleanupOutcome, RegistryError
from .tools.diff_resolver import Comparison, ConflictAction, ConflictDecision
from .tools.issues import GhIssueSink
from .tools.scratch import scratch_targets
from .tools.vcs import GitError, GitRepository

APP_HELP = "Session-scoped governance automation: align, plan and clean up."

DIFF_PREVIEW_LINES = 40

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _resolve_repo(repo: Optional[Path]) -> Path:
    if repo is not None:
        root = repo.resolve()
        if not root.is_dir():
            typer.echo(f"Repository directory not found: {root}")
            raise typer.Exit(code=1)
        return root
    try:
        return GitRepository.discover(Path.cwd()).root
    except GitError:
        return Path.cwd().resolve()


def _discover_vcs(repo_root: Path) -> Optional[GitRepository]:
    try:
        return GitRepository(repo_root)
    except GitError:
        return None


def _load_config(repo_root: Path, config: Optional[str]) -> Dict[str, Any]:
    if config is not None:
        config_path = Path(config)
        if not config_path.is_absolute():
            config_path = repo_root / config_path
        if not config_path.exists():
            typer.echo(f"Config file not found: {config_path}")
            raise typer.Exit(code=1)
    try:
        return load_config(config or DEFAULT_CONFIG_NAME, repo_root=repo_root)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _echo_session(session_id: str) -> None:
    typer.echo(f"Session: {session_id}")
    typer.echo(f"Undo with: aigov cleanup --session {session_id}")


def _echo_started_session(pipelines: Sequence[PlanningPipeline]) -> None:
    if pipelines and pipelines[-1].session_id:
        _echo_session(pipelines[-1].session_id)


class _OfflineAgent(AgentClient):
    """Local stub that writes deterministic stage outputs for demos and tests."""

    name = "offline"

    def _run(self, prompt: str, capabilities: list[str], metadata: Dict[str, Any]) -> AgentResult:
        stage = str(metadata.get("stage") or "unknown")
        output_path = metadata.get("output_path")
        if output_path:
            path = Path(output_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self._build_output(stage), encoding="utf-8")
            return AgentResult(transcript=f"offline: wrote {path.name}", exit_status=0, metadata=metadata)
        task_id = metadata.get("task_id")
        return AgentResult(transcript=f"offline: nothing to do for task {task_id}", exit_status=0, metadata=metadata)

    def _build_output(self, stage: str) -> str:
        if stage == PlanningStage.VALIDATE_APPROACH.value:
            return "Verdict: PROCEED\n\nOffline validation: no objections recorded.\n"
        if stage == PlanningStage.DECOMPOSE_TASKS.value:
            tasks = [
                {
                    "id": "01",
                    "name": "Prepare configuration",
                    "category": "SETUP",
                    "depends_on": [],
                    "files": [],
                    "estimated_lines": 10,
                    "verification": "manual review",
                    "rollback": "revert configuration changes",
                },
                {
                    "id": "02",
                    "name": "Implement the change",
                    "category": "IMPLEMENT",
                    "depends_on": ["01"],
                    "files": [],
                    "estimated_lines": 40,
                    "verification": "manual review",
                    "rollback": "revert the implementation",
                },
                {
                    "id": "03",
                    "name": "Document the change",
                    "category": "DOCUMENT",
                    "depends_on": ["02"],
                    "files": [],
                    "estimated_lines": 15,
                    "verification": "manual review",
                    "rollback": "revert documentation",
                },
            ]
            return json.dumps({"tasks": tasks}, indent=2) + "\n"
        if stage == PlanningStage.EXECUTE_RESEARCH.value:
            return "# Findings\n\nOffline research: no repository analysis was performed.\n"
        title = stage.replace("_", " ").title()
        return f"# {title}\n\nOffline placeholder for the {stage} stage.\n"


# --------------------------------------------------------------- prompts
def _prompt_conflict(comparison: Comparison) -> ConflictDecision:
    typer.echo("")
    typer.echo(
        f"Conflict: {comparison.local_path} "
        f"(local {comparison.local_line_count} lines, reference {comparison.reference_line_count} lines)"
    )
    diff_lines = comparison.diff_text.splitlines()
    for line in diff_lines[:DIFF_PREVIEW_LINES]:
        typer.echo(f"  {line}")
    if len(diff_lines) > DIFF_PREVIEW_LINES:
        typer.echo(f"  ... {len(diff_lines) - DIFF_PREVIEW_LINES} more lines")

    while True:
        answer = typer.prompt("[r]eplace with reference or [k]eep local", default="r").strip().lower()
        if answer in {"r", "replace"}:
            action = ConflictAction.REPLACE
            break
        if answer in {"k", "keep"}:
            action = ConflictAction.KEEP_LOCAL
            break
        typer.echo("Please answer r or k.")
    contribute = typer.confirm("Contribute the local version upstream?", default=False)
    return ConflictDecision(
        local_path=comparison.local_path,
        reference_path=comparison.reference_path,
        action=action,
        contribute=contribute,
    )


def _prompt_rule(path: Path) -> str:
    typer.echo(f"Local rule {path} has no reference counterpart.")
    while True:
        answer = typer.prompt("keep, contribute or delete", default="keep").strip().lower()
        if answer in {"keep", "contribute", "delete"}:
            return answer
        typer.echo("Please answer keep, contribute or delete.")


def _prompt_scope(plan: TaskPlan) -> str:
    typer.echo("Tasks:")
    for task in plan.ordered():
        priority = task.priority.value if task.priority else "-"
        typer.echo(f"  [{priority}] {task.id}: {task.name}")
    return typer.prompt("Execute which tasks? (all, p0-p1, p0, none or comma-separated ids)", default="p0")


# ------------------------------------------------------------- rendering
_CLEANUP_LABELS = {
    CleanupOutcome.REMOVED: "removed",
    CleanupOutcome.MISSING: "already gone",
    CleanupOutcome.WOULD_REMOVE: "would remove",
    CleanupOutcome.ERROR: "error",
}

_MENU_CHOICES = {"1": "alignment", "2": "features", "3": "research", "4": "prompts", "5": "all"}


def _echo_cleanup_entries(entries: Sequence[CleanupEntry]) -> None:
    for entry in entries:
        detail = f" :: {entry.message}" if entry.message else ""
        typer.echo(f"- {_CLEANUP_LABELS[entry.outcome]}: {entry.path}{detail}")


def _scratch_dir(repo_root: Path, config_data: Dict[str, Any]) -> Path:
    return repo_root / str(section(config_data, "paths").get("scratch") or ".ai/_scratch")


def _prompt_category(repo_root: Path, config_data: Dict[str, Any]) -> str:
    scratch = _scratch_dir(repo_root, config_data)
    typer.echo("Current scratch artifacts:")
    for key, category in _MENU_CHOICES.items():
        if category == "all":
            typer.echo(f"  {key}) all of the above")
            continue
        typer.echo(f"  {key}) {category}: {len(scratch_targets(scratch, [category]))}")
    typer.echo("  q) quit")
    choice = typer.prompt("Clean which? [1-5/q]", default="q").strip().lower()
    if choice == "q":
        raise typer.Exit(code=0)
    if choice not in _MENU_CHOICES:
        typer.echo(f"Invalid choice: {choice}")
        raise typer.Exit(code=1)
    return _MENU_CHOICES[choice]


def _sweep(repo_root: Path, config_data: Dict[str, Any], categories: Sequence[str], *, dry_run: bool) -> None:
    """Remove scratch paths by category and retire the sessions that owned them."""
    targets = scratch_targets(_scratch_dir(repo_root, config_data), categories)
    if not targets:
        typer.echo(f"No {', '.join(categories)} artifacts found.")
        return
    registry = ArtifactRegistry.from_config(config_data, repo_root)
    try:
        report = registry.cleanup_paths(targets, dry_run=dry_run)
    except RegistryError as error:
        typer.echo(f"Artifact registry error: {error}")
        raise typer.Exit(code=1) from error

    _echo_cleanup_entries(report.entries)
    verb = "would be destroyed" if dry_run else "destroyed"
    for session_id in report.sessions:
        typer.echo(f"Session {session_id} {verb}.")
    if not dry_run:
        typer.echo(f"Removed {len(report.removed)} paths ({len(report.errors)} errors).")
    if report.errors:
        raise typer.Exit(code=3)


def _render_alignment(report: AlignmentReport) -> None:
    title = "Alignment plan (dry run)" if report.dry_run else "Alignment summary"
    typer.echo(f"{title}:")
    if report.reference is not None:
        typer.echo(f"- Reference: {report.reference.golden_image}")
    for key, value in report.counts().items():
        typer.echo(f"- {key}: {value}")
    if report.ignored:
        typer.echo(f"- .gitignore: added {', '.join(report.ignored)}")
    for warning in report.warnings:
        typer.echo(f"  warning: {warning}")
    for failure in report.failures:
        typer.echo(f"  ! {failure}")
    if report.fatal:
        typer.echo(f"Fatal: {report.fatal}")
    if report.plan_path is not None:
        typer.echo(f"Plan written to {report.plan_path}")
    if report.summary_path is not None:
        typer.echo(f"Run summary: {report.summary_path}")
    _echo_session(report.session_id)


def _render_planning(outcome: PlanningOutcome) -> None:
    typer.echo(f"{outcome.mode.title()} run: {outcome.run_dir}")
    for record in outcome.stages:
        note = f" ({record.note})" if record.note else ""
        typer.echo(f"- {record.stage.value}: {record.status}{note}")
    if outcome.question_type:
        typer.echo(f"Question type: {outcome.question_type}")
    if outcome.findings_path is not None:
        typer.echo(f"Findings: {outcome.findings_path}")
    if outcome.selection is not None:
        order = ", ".join(outcome.selection.execution_order) or "(none)"
        typer.echo(f"Execution order: {order}")
        for run in outcome.task_runs:
            typer.echo(f"  {run.task_id}: {run.status} (verification: {run.verification})")
            if run.status == "failed" and run.rollback:
                typer.echo(f"    rollback: {run.rollback}")
    if outcome.deferral is not None:
        for task_id, url in outcome.deferral.issues.items():
            typer.echo(f"Deferred {task_id} -> {url}")
        if outcome.deferral.fallback_path is not None:
            typer.echo(f"Deferred work written to {outcome.deferral.fallback_path}")
    if outcome.manual:
        typer.echo(f"Agent unavailable: run the prompts under {outcome.run_dir / 'prompts'} manually.")
    for warning in outcome.warnings:
        typer.echo(f"  warning: {warning}")
    for failure in outcome.failures:
        typer.echo(f"  ! {failure}")
    _echo_session(outcome.session_id)


# -------------------------------------------------------------- commands
@app.command()
def align(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository root (defaults to the current git root)."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Configuration file (default: {DEFAULT_CONFIG_NAME} when present).",
    ),
    reference: Optional[Path] = typer.Option(None, "--reference", help="Use this golden-image directory."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Write an alignment plan instead of changing files."),
    non_interactive: bool = typer.Option(
        False,
        "--non-interactive",
        help="Replace every differing file with the reference copy and keep local-only rules.",
    ),
    skip_reference_update: bool = typer.Option(
        False,
        "--skip-reference-update",
        help="Do not update the governance submodule before aligning.",
    ),
    defer: bool = typer.Option(False, "--defer", help="File the latest alignment plan as an issue."),
    destroy: bool = typer.Option(False, "--destroy", help="Remove alignment plans and contributions from scratch."),
) -> None:
    """Align the repository with the governance golden image."""
    repo_root = _resolve_repo(repo)
    config_data = _load_config(repo_root, config)

    if destroy:
        _sweep(repo_root, config_data, ["alignment"], dry_run=dry_run)
        return

    if defer:
        sink = GhIssueSink.from_config(config_data, repo_root)
        try:
            result = defer_alignment(repo_root, config=config_data, sink=sink)
        except (FileNotFoundError, RegistryError) as error:
            typer.echo(str(error))
            raise typer.Exit(code=1) from error
        if result.issue_url:
            typer.echo(f"Filed {result.plan_path.name} as {result.issue_url}")
        else:
            typer.echo(f"Issue tracker unavailable ({result.reason}); appended plan to {result.fallback_path}")
        _echo_session(result.session_id)
        return

    interactive = not non_interactive
    options = AlignmentOptions(
        dry_run=dry_run,
        interactive=interactive,
        skip_reference_update=skip_reference_update,
        reference_override=reference,
    )
    pipeline = AlignmentPipeline(
        repo_root,
        config=config_data,
        vcs=_discover_vcs(repo_root),
        options=options,
        chooser=_prompt_conflict if interactive else None,
        rule_chooser=_prompt_rule if interactive else None,
    )
    try:
        report = pipeline.run()
    except typer.Abort:
        if pipeline.session_id:
            _echo_session(pipeline.session_id)
        raise
    except RegistryError as error:
        typer.echo(f"Artifact registry error: {error}")
        if pipeline.session_id:
            _echo_session(pipeline.session_id)
        raise typer.Exit(code=1) from error
    except Exception as error:
        LOGGER.exception("Alignment aborted")
        typer.echo(f"Alignment failed unexpectedly: {error}")
        if pipeline.session_id:
            _echo_session(pipeline.session_id)
        raise typer.Exit(code=1) from error

    _render_alignment(report)
    if report.exit_code:
        raise typer.Exit(code=report.exit_code)


@app.command()
def plan(
    research: Optional[str] = typer.Option(None, "--research", help="Answer a question without changing code."),
    request: Optional[str] = typer.Option(None, "--request", help="Feature request to plan and execute."),
    request_file: Optional[Path] = typer.Option(None, "--request-file", help="Read the feature request from a file."),
    execute: Optional[str] = typer.Option(
        None,
        "--execute",
        "-x",
        help="Tasks to execute: all, p0-p1, p0, none or comma-separated ids.",
    ),
    defer_to_issue: bool = typer.Option(False, "--defer-to-issue", help="File deferred tasks as issues."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Render stage prompts without calling the agent."),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Never prompt."),
    offline: bool = typer.Option(False, "--offline", help="Use the deterministic offline agent."),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository root (defaults to the current git root)."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file."),
) -> None:
    """Research a question or plan, prioritize and execute a feature."""
    provided = [value for value in (research, request, request_file) if value is not None]
    if len(provided) != 1:
        typer.echo("Provide exactly one of --research, --request or --request-file.")
        raise typer.Exit(code=1)

    repo_root = _resolve_repo(repo)
    config_data = _load_config(repo_root, config)

    request_text = request
    if request_file is not None:
        try:
            request_text = request_file.read_text(encoding="utf-8")
        except OSError as error:
            typer.echo(f"Unable to read request file: {error}")
            raise typer.Exit(code=1) from error
        if not request_text.strip():
            typer.echo(f"Request file {request_file} is empty.")
            raise typer.Exit(code=1)

    interactive = not non_interactive
    agent: AgentClient = _OfflineAgent() if offline else ClaudeCliAgent.from_config(config_data, repo_root)
    sink = GhIssueSink.from_config(config_data, repo_root) if defer_to_issue else None
    reference = locate_reference(repo_root, config_data)
    bundle_dir = None
    if reference is not None:
        bundle_dir = reference.golden_image / str(section(config_data, "planning").get("bundle") or "")
    options = PlanningOptions(
        dry_run=dry_run,
        interactive=interactive,
        scope=execute,
        defer_to_issue=defer_to_issue,
    )

    started: list[PlanningPipeline] = []

    def _pipeline() -> PlanningPipeline:
        pipeline = PlanningPipeline(
            repo_root,
            config=config_data,
            agent=agent,
            sink=sink,
            options=options,
            bundle_dir=bundle_dir,
            scope_chooser=_prompt_scope if interactive else None,
        )
        started.append(pipeline)
        return pipeline

    try:
        if research is not None:
            outcome = _pipeline().run_research(research)
            _render_planning(outcome)
            if not (
                interactive
                and outcome.findings_path is not None
                and typer.confirm("Plan a feature based on these findings?", default=False)
            ):
                if outcome.exit_code:
                    raise typer.Exit(code=outcome.exit_code)
                return
            request_text = f"{research}\n\nResearch findings: {outcome.findings_path}"

        outcome = _pipeline().run_feature(request_text or "")
    except ValidationGateError as error:
        typer.echo(str(error))
        if error.outcome is not None:
            _echo_session(error.outcome.session_id)
        raise typer.Exit(code=2) from error
    except (typer.Exit, typer.Abort):
        raise
    except RegistryError as error:
        typer.echo(f"Artifact registry error: {error}")
        _echo_started_session(started)
        raise typer.Exit(code=1) from error
    except Exception as error:
        LOGGER.exception("Planning aborted")
        typer.echo(f"Planning failed unexpectedly: {error}")
        _echo_started_session(started)
        raise typer.Exit(code=1) from error

    _render_planning(outcome)
    if outcome.exit_code:
        raise typer.Exit(code=outcome.exit_code)


@app.command()
def cleanup(
    session: Optional[str] = typer.Option(None, "--session", "-s", help="Session id printed by align or plan."),
    alignment: bool = typer.Option(False, "--alignment", help="Remove alignment plans, deferrals and contributions."),
    features: bool = typer.Option(False, "--features", help="Remove feature run directories."),
    research: bool = typer.Option(False, "--research", help="Remove research run directories."),
    prompts: bool = typer.Option(False, "--prompts", help="Remove rendered prompt directories."),
    everything: bool = typer.Option(False, "--all", help="Remove every scratch artifact except the registry."),
    dry_run: bool = typer.Option(False, "--dry-run", help="List what would be removed."),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository root (defaults to the current git root)."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file."),
) -> None:
    """Delete a session's artifacts, newest first, or sweep scratch output by category.

    Without a session or category a menu asks what to remove.
    """
    repo_root = _resolve_repo(repo)
    config_data = _load_config(repo_root, config)
    flags = {
        "alignment": alignment,
        "features": features,
        "research": research,
        "prompts": prompts,
        "all": everything,
    }
    categories = [name for name, enabled in flags.items() if enabled]
    if session and categories:
        typer.echo("Use either --session or a category flag, not both.")
        raise typer.Exit(code=1)
    if session is None:
        if not categories:
            categories = [_prompt_category(repo_root, config_data)]
        _sweep(repo_root, config_data, categories, dry_run=dry_run)
        return

    registry = ArtifactRegistry.from_config(config_data, repo_root)
    try:
        report = registry.cleanup_session(session, dry_run=dry_run)
    except RegistryError as error:
        typer.echo(f"Artifact registry error: {error}")
        raise typer.Exit(code=1) from error

    if not report.known_session:
        typer.echo(f"Unknown session: {session}")
        raise typer.Exit(code=1)

    _echo_cleanup_entries(report.entries)
    if dry_run:
        typer.echo(f"Dry run: session {session} left unchanged.")
    else:
        typer.echo(f"Session {session} destroyed ({len(report.removed)} removed, {len(report.errors)} errors).")
    if report.errors:
        raise typer.Exit(code=3)


@app.command()
def sessions(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Repository root (defaults to the current git root)."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file."),
) -> None:
    """List recorded sessions."""
    repo_root = _resolve_repo(repo)
    config_data = _load_config(repo_root, config)
    registry = ArtifactRegistry.from_config(config_data, repo_root)
    try:
        records = registry.list_sessions()
    except RegistryError as error:
        typer.echo(f"Artifact registry error: {error}")
        raise typer.Exit(code=1) from error
    if not records:
        typer.echo("No sessions recorded.")
        return
    for record in records:
        typer.echo(f"{record.id}  {record.script:<12} {record.status.value:<10} {len(record.artifacts)} artifacts")


if __name__ == "__main__":
    app()
