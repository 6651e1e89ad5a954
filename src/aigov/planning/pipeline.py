"""Research and feature-planning pipelines.

Both pipelines keep every output inside a per-run scratch directory that is
registered with the session before anything is written into it. Agent-backed
stages degrade to rendered prompt files when the agent is unavailable or the
run is a dry run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..config import section
from ..models.agent import AgentClient, AgentError, AgentUnavailableError
from ..phases import AGENT_STAGE_OUTPUTS, FEATURE_SEQUENCE, PlanningStage
from ..prompts import classify_question, render_stage_prompt, render_task_prompt
from ..registry import ArtifactKind, ArtifactRegistry, Classification, SessionStatus
from ..tools.issues import IssueSink
from ..tools.run_summary import RunSummary
from ..tools.verification import VerificationCheck
from ..utils.files import atomic_write_text, relative_to_root
from ..utils.slug import slugify
from .decomposer import TaskGraphError, load_task_plan
from .deferral import DeferralOutcome, defer_tasks
from .prioritizer import PriorityRules, prioritize, render_priorities
from .schemas import PlanTask, TaskPlan
from .scope import ScopeError, ScopeSelection, select_scope

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_BLOCKED = 2
EXIT_PARTIAL = 3

VERDICT_PATTERN = re.compile(r"^[\s#>*_-]*verdict[\s*_]*:[\s*_]*(PROCEED|WARN|BLOCK)\b", re.IGNORECASE | re.MULTILINE)

ScopeChooser = Callable[[TaskPlan], str]


class ValidationGateError(RuntimeError):
    """Raised when the approach validation stage returns a BLOCK verdict."""

    def __init__(self, message: str, *, verdict: str = "BLOCK", path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.verdict = verdict
        self.path = path
        self.outcome: Optional["PlanningOutcome"] = None


def parse_verdict(path: Path) -> str:
    """Return PROCEED, WARN or BLOCK from ``validation.md``; anything unreadable blocks."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return "BLOCK"
    match = VERDICT_PATTERN.search(text)
    return match.group(1).upper() if match else "BLOCK"


@dataclass(slots=True)
class PlanningOptions:
    dry_run: bool = False
    interactive: bool = True
    scope: Optional[str] = None
    defer_to_issue: bool = False


@dataclass(slots=True)
class StageRecord:
    stage: PlanningStage
    status: str
    output: Optional[Path] = None
    note: str = ""


@dataclass(slots=True)
class TaskRun:
    task_id: str
    status: str
    verification: str = "not run"
    rollback: str = ""
    note: str = ""


@dataclass(slots=True)
class PlanningOutcome:
    """Result of one research or feature-planning run."""

    session_id: str
    mode: str
    run_dir: Path
    stages: List[StageRecord] = field(default_factory=list)
    question_type: Optional[str] = None
    findings_path: Optional[Path] = None
    verdict: Optional[str] = None
    plan: Optional[TaskPlan] = None
    selection: Optional[ScopeSelection] = None
    deferral: Optional[DeferralOutcome] = None
    task_runs: List[TaskRun] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    unavailable: List[str] = field(default_factory=list)
    manual: bool = False
    blocked: bool = False
    aborted: bool = False
    summary_path: Optional[Path] = None

    @property
    def execution_order(self) -> List[str]:
        return list(self.selection.execution_order) if self.selection else []

    @property
    def status(self) -> SessionStatus:
        if self.blocked or self.aborted:
            return SessionStatus.FAILED
        return SessionStatus.COMPLETED

    @property
    def exit_code(self) -> int:
        if self.blocked:
            return EXIT_BLOCKED
        if self.failures or self.unavailable:
            return EXIT_PARTIAL
        return EXIT_OK


class _Abort(Exception):
    """Internal signal that the remaining stages must not run."""


class PlanningPipeline:
    """Drive the research or feature-planning stages for one request."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        config: Mapping[str, Any],
        agent: Optional[AgentClient] = None,
        registry: Optional[ArtifactRegistry] = None,
        sink: Optional[IssueSink] = None,
        options: Optional[PlanningOptions] = None,
        bundle_dir: Optional[Path] = None,
        scope_chooser: Optional[ScopeChooser] = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self.config = config
        self.agent = agent
        self.registry = registry or ArtifactRegistry.from_config(config, self.repo_root)
        self.sink = sink
        self.options = options or PlanningOptions()
        self.bundle_dir = bundle_dir
        self.scope_chooser = scope_chooser
        self.agent_cfg = section(config, "agent")
        self.planning_cfg = section(config, "planning")
        self.issues_cfg = section(config, "issues")
        scratch = str(section(config, "paths").get("scratch") or ".ai/_scratch")
        self.scratch_dir = self.repo_root / scratch

        self._agent_missing = agent is None
        self.session_id = ""
        self.outcome: Optional[PlanningOutcome] = None
        self.summary: Optional[RunSummary] = None

    # ------------------------------------------------------------ sessions
    def _start(self, script: str, mode: str, label: str, request: str) -> PlanningOutcome:
        self.session_id = self.registry.init_session(script)
        self.summary = RunSummary.start(self.registry, self.session_id, script, scratch_dir=self.scratch_dir)
        run_dir = self.scratch_dir / f"{mode}-{slugify(label, fallback=mode)}-{self.session_id}"
        run_dir.mkdir(parents=True, exist_ok=True)
        self.registry.register_artifact(self.session_id, run_dir, ArtifactKind.DIRECTORY, mode, Classification.C)
        self.outcome = PlanningOutcome(session_id=self.session_id, mode=mode, run_dir=run_dir)
        self.outcome.summary_path = self.summary.path
        self._write(run_dir / "user-request.md", request.strip() + "\n", "user-request")
        self.summary.event(f"run directory {self._relative(run_dir)}")
        return self.outcome

    def _finish(self) -> PlanningOutcome:
        outcome = self.outcome
        self.summary.finish(outcome.status.value)
        self.registry.complete_session(self.session_id, outcome.status)
        return outcome

    def _guarded(self, body: Callable[[], None]) -> PlanningOutcome:
        try:
            body()
        except _Abort:
            self.outcome.aborted = True
        except ValidationGateError as error:
            error.outcome = self._finish()
            raise
        except BaseException:
            self.summary.failure("Planning aborted unexpectedly")
            self.summary.finish(SessionStatus.FAILED.value)
            self.registry.complete_session(self.session_id, SessionStatus.FAILED)
            raise
        return self._finish()

    # ------------------------------------------------------------- helpers
    def _relative(self, path: Path) -> str:
        return relative_to_root(path, self.repo_root)

    def _write(self, path: Path, content: str, produced_by: str) -> Path:
        existed = path.exists()
        atomic_write_text(path, content)
        if not existed:
            self.registry.register_artifact(self.session_id, path, ArtifactKind.FILE, produced_by, Classification.C)
        return path

    def _fail(self, message: str) -> None:
        self.outcome.failures.append(message)
        self.summary.failure(message)

    def _warn(self, message: str) -> None:
        self.outcome.warnings.append(message)
        self.summary.warning(message)

    def _unavailable(self, message: str) -> None:
        self.outcome.unavailable.append(message)
        self._warn(message)

    def _record(self, stage: PlanningStage, status: str, *, output: Optional[Path] = None, note: str = "") -> StageRecord:
        record = StageRecord(stage=stage, status=status, output=output, note=note)
        self.outcome.stages.append(record)
        self.summary.phase(stage.value, status, note)
        return record

    def _capabilities(self, key: str) -> List[str]:
        return [str(item) for item in self.agent_cfg.get(key) or []]

    def _write_prompt(self, name: str, prompt: str) -> Path:
        return self._write(self.outcome.run_dir / "prompts" / f"{name}.md", prompt, "prompt")

    def _agent_stage(
        self,
        stage: PlanningStage,
        request: str,
        *,
        capabilities: Sequence[str],
        extra: Sequence[str] = (),
    ) -> StageRecord:
        run_dir = self.outcome.run_dir
        output = run_dir / AGENT_STAGE_OUTPUTS[stage]
        prompt = render_stage_prompt(
            stage,
            request=request,
            run_dir=run_dir,
            repo_root=self.repo_root,
            bundle_dir=self.bundle_dir,
            extra=extra,
        )

        if self.options.dry_run:
            path = self._write_prompt(stage.value, prompt)
            return self._record(stage, "rendered", output=path, note="dry run")
        if self._agent_missing:
            if not self.outcome.unavailable:
                self._unavailable("No agent configured; stages are written as prompts")
            path = self._write_prompt(stage.value, prompt)
            self.outcome.manual = True
            return self._record(stage, "skipped", output=path, note=f"agent unavailable; run {self._relative(path)}")

        metadata: Dict[str, Any] = {
            "stage": stage.value,
            "output_path": str(output),
            "run_dir": str(run_dir),
            "session_id": self.session_id,
        }
        try:
            result = self.agent.invoke(prompt, capabilities, metadata=metadata)
        except AgentUnavailableError as error:
            self._agent_missing = True
            self._unavailable(f"Agent unavailable: {error}; remaining stages are written as prompts")
            path = self._write_prompt(stage.value, prompt)
            self.outcome.manual = True
            return self._record(stage, "skipped", output=path, note=f"agent unavailable; run {self._relative(path)}")
        except AgentError as error:
            self._fail(f"{stage.value}: {error}")
            return self._record(stage, "failed", note=str(error))

        self._write(run_dir / "logs" / f"{stage.value}.log", result.transcript, stage.value)
        if output.exists():
            self.registry.register_artifact(self.session_id, output, ArtifactKind.FILE, stage.value, Classification.C)
        if not result.ok:
            self._fail(f"{stage.value}: agent exited with status {result.exit_status}")
            return self._record(stage, "failed", output=output, note=f"exit {result.exit_status}")
        if not output.exists():
            self._warn(f"{stage.value}: agent did not write {output.name}")
            return self._record(stage, "done", note=f"{output.name} missing")
        return self._record(stage, "done", output=output)

    # ----------------------------------------------------------- research
    def run_research(self, question: str) -> PlanningOutcome:
        """Classify ``question``, let the agent research it and present the findings."""
        self._start("plan-research", "research", question, question)
        return self._guarded(lambda: self._research_stages(question))

    def _research_stages(self, question: str) -> None:
        outcome = self.outcome
        outcome.question_type = classify_question(question)
        self._record(PlanningStage.CLASSIFY_QUESTION, "done", note=outcome.question_type)

        record = self._agent_stage(
            PlanningStage.EXECUTE_RESEARCH,
            question,
            capabilities=self._capabilities("research_capabilities"),
            extra=[f"Question type: {outcome.question_type}", "Do not modify repository files."],
        )

        findings = outcome.run_dir / AGENT_STAGE_OUTPUTS[PlanningStage.EXECUTE_RESEARCH]
        if record.status == "done" and findings.exists():
            outcome.findings_path = findings
            self._record(PlanningStage.PRESENT_FINDINGS, "done", output=findings)
        else:
            self._record(PlanningStage.PRESENT_FINDINGS, "skipped", note="no findings")

    # ------------------------------------------------------------ feature
    def run_feature(self, request: str, *, label: Optional[str] = None) -> PlanningOutcome:
        """Run the feature stages from understanding the request to executing tasks."""
        if label is None:
            lines = request.strip().splitlines()
            label = lines[0] if lines else "feature"
        self._start("plan", "feature", label, request)
        return self._guarded(lambda: self._feature_stages(request))

    def _feature_stages(self, request: str) -> None:
        capabilities = self._capabilities("capabilities")
        for stage in FEATURE_SEQUENCE:
            if stage == PlanningStage.PRIORITIZE_TASKS:
                self.prioritize_tasks()
            elif stage == PlanningStage.EXECUTE_SELECTED_TASKS:
                self.execute_selected_tasks()
            else:
                record = self._agent_stage(stage, request, capabilities=capabilities)
                if stage == PlanningStage.VALIDATE_APPROACH:
                    self._gate(record)
                elif stage == PlanningStage.DECOMPOSE_TASKS:
                    self.decompose_tasks(record)

    def _gate(self, record: StageRecord) -> None:
        if record.status in {"rendered", "skipped"}:
            return
        path = self.outcome.run_dir / AGENT_STAGE_OUTPUTS[PlanningStage.VALIDATE_APPROACH]
        verdict = parse_verdict(path)
        self.outcome.verdict = verdict
        record.note = f"verdict {verdict}"
        self.summary.write()
        if verdict == "WARN":
            self._warn(f"Approach validation returned WARN; review {self._relative(path)}")
        elif verdict == "BLOCK":
            self.outcome.blocked = True
            message = f"Approach validation blocked the request; see {self._relative(path)}"
            self.summary.failure(message)
            raise ValidationGateError(message, verdict=verdict, path=path)

    def decompose_tasks(self, record: StageRecord) -> None:
        if record.status in {"rendered", "skipped"}:
            return
        path = self.outcome.run_dir / AGENT_STAGE_OUTPUTS[PlanningStage.DECOMPOSE_TASKS]
        try:
            plan = load_task_plan(path, planning_cfg=self.planning_cfg)
        except TaskGraphError as error:
            self._fail(str(error))
            record.status = "failed"
            record.note = "invalid task graph"
            self.summary.write()
            raise _Abort() from error
        self.outcome.plan = plan
        for warning in plan.warnings:
            self._warn(warning)
        record.note = f"{len(plan.tasks)} tasks"
        self.summary.count("tasks", len(plan.tasks))
        self.summary.write()

    def prioritize_tasks(self) -> None:
        stage = PlanningStage.PRIORITIZE_TASKS
        plan = self.outcome.plan
        if plan is None:
            self._record(stage, "skipped", note="no task plan")
            return
        prioritize(plan, PriorityRules.from_config(self.planning_cfg.get("priority_rules")))
        path = self._write(self.outcome.run_dir / "PRIORITIES.md", render_priorities(plan), stage.value)
        self._record(stage, "done", output=path)

    def _resolve_scope(self, plan: TaskPlan) -> str:
        if self.options.scope:
            return self.options.scope
        if self.options.interactive and self.scope_chooser is not None:
            return self.scope_chooser(plan)
        return "none"

    def execute_selected_tasks(self) -> None:
        stage = PlanningStage.EXECUTE_SELECTED_TASKS
        outcome = self.outcome
        plan = outcome.plan
        if plan is None:
            self._record(stage, "skipped", note="no task plan")
            return

        scope = self._resolve_scope(plan)
        try:
            selection = select_scope(plan, scope)
        except ScopeError as error:
            self._fail(str(error))
            self._record(stage, "failed", note="invalid scope")
            raise _Abort() from error
        outcome.selection = selection

        labels = [str(label) for label in self.issues_cfg.get("labels") or []]
        outcome.deferral = defer_tasks(
            selection.deferred,
            run_dir=outcome.run_dir,
            feature=outcome.run_dir.name,
            registry=self.registry,
            session_id=self.session_id,
            sink=self.sink,
            use_issues=self.options.defer_to_issue,
            labels=labels,
            dry_run=self.options.dry_run,
        )
        for reason in dict.fromkeys(outcome.deferral.reasons):
            self._unavailable(f"Deferred work written locally: {reason}")
        self.summary.count("deferred", len(selection.deferred))
        self.summary.count("issues", len(outcome.deferral.issues))

        index = plan.by_id()
        failed: set[str] = set()
        for task_id in selection.execution_order:
            task = index[task_id]
            blocked_by = [dependency for dependency in task.depends_on if dependency in failed]
            if blocked_by:
                failed.add(task_id)
                run = TaskRun(task_id, "skipped", rollback=task.rollback, note=f"prerequisite failed: {', '.join(blocked_by)}")
                outcome.task_runs.append(run)
                self._fail(f"task {task_id} skipped because {', '.join(blocked_by)} failed")
                continue
            run = self._execute_task(task)
            outcome.task_runs.append(run)
            if run.status == "failed":
                failed.add(task_id)

        executed = sum(1 for run in outcome.task_runs if run.status == "done")
        self.summary.count("executed", executed)
        self.summary.count("failed", len(failed))
        self._record(stage, "done" if not failed else "done with failures", note=f"scope {scope}")

    def _execute_task(self, task: PlanTask) -> TaskRun:
        run_dir = self.outcome.run_dir
        prompt = render_task_prompt(task, run_dir=run_dir, repo_root=self.repo_root)
        name = f"task-{slugify(task.id, fallback='task')}"
        if self.options.dry_run or self._agent_missing:
            path = self._write_prompt(name, prompt)
            self.outcome.manual = self.outcome.manual or self._agent_missing
            return TaskRun(task.id, "skipped", rollback=task.rollback, note=f"prompt at {self._relative(path)}")

        metadata = {
            "stage": PlanningStage.EXECUTE_SELECTED_TASKS.value,
            "task_id": task.id,
            "run_dir": str(run_dir),
            "session_id": self.session_id,
        }
        try:
            result = self.agent.invoke(prompt, self._capabilities("capabilities"), metadata=metadata)
        except AgentUnavailableError as error:
            self._agent_missing = True
            self._unavailable(f"Agent unavailable: {error}; remaining tasks are written as prompts")
            path = self._write_prompt(name, prompt)
            self.outcome.manual = True
            return TaskRun(task.id, "skipped", rollback=task.rollback, note=f"prompt at {self._relative(path)}")
        except AgentError as error:
            self._fail(f"task {task.id} failed: {error}; rollback: {task.rollback or 'n/a'}")
            return TaskRun(task.id, "failed", rollback=task.rollback, note=str(error))

        self._write(run_dir / "logs" / f"{name}.log", result.transcript, PlanningStage.EXECUTE_SELECTED_TASKS.value)
        if not result.ok:
            self._fail(f"task {task.id} failed with status {result.exit_status}; rollback: {task.rollback or 'n/a'}")
            return TaskRun(task.id, "failed", rollback=task.rollback, note=f"exit {result.exit_status}")

        verification = VerificationCheck(task.verification).run(self.repo_root)
        if verification.failed:
            self._fail(f"task {task.id}: {verification.short_message()}; rollback: {task.rollback or 'n/a'}")
            return TaskRun(task.id, "failed", verification="failed", rollback=task.rollback, note=verification.short_message())
        self.summary.event(f"task {task.id} done ({verification.short_message()})")
        return TaskRun(task.id, "done", verification=verification.status, rollback=task.rollback)


__all__ = [
    "PlanningOptions",
    "PlanningOutcome",
    "PlanningPipeline",
    "StageRecord",
    "TaskRun",
    "ValidationGateError",
    "parse_verdict",
]
