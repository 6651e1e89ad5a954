"""Repository alignment against the governance golden-image template.

The pipeline runs ``setup_reference`` followed by the per-item phases. Only a
missing reference aborts the run; every other problem is recorded as an item
failure and reflected in the exit code.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .config import section
from .phases import ALIGNMENT_SEQUENCE, AlignmentPhase
from .registry import ArtifactKind, ArtifactRegistry, Classification, RegistryError, SessionStatus
from .tools.diff_resolver import (
    Chooser,
    ConflictAction,
    DiffResolver,
    MissingSideError,
    ResolutionOutcome,
    compare,
    is_backup_name,
)
from .tools.issues import IssueSink, file_issue
from .tools.run_summary import RunSummary
from .tools.tooling import discover_tooling
from .tools.vcs import GitError, GitRepository
from .utils.files import atomic_write_text, relative_to_root

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 3

AIGOV_COMMANDS = (
    ("aigov align", "Align the repository with the governance golden image."),
    ("aigov plan", "Run the research or feature-planning pipeline."),
    ("aigov cleanup --session <id>", "Delete every artifact a session produced."),
    ("aigov sessions", "List recorded sessions and their status."),
)

RuleChooser = Callable[[Path], str]
"""Return ``keep``, ``contribute`` or ``delete`` for a local-only rule file."""

_RULE_CHOICES = {"keep", "contribute", "delete"}


class FatalSetupError(RuntimeError):
    """Raised when no usable reference template can be located."""


@dataclass(slots=True)
class ReferenceTemplate:
    golden_image: Path
    governance_root: Optional[Path] = None
    updated: bool = False


@dataclass(slots=True)
class CreateMapping:
    target: str
    template: str


@dataclass(slots=True)
class AlignmentOptions:
    dry_run: bool = False
    interactive: bool = True
    skip_reference_update: bool = False
    reference_override: Optional[Path] = None


@dataclass(slots=True)
class AlignmentReport:
    """Everything an alignment run did, or would do in dry-run mode."""

    session_id: str
    dry_run: bool = False
    reference: Optional[ReferenceTemplate] = None
    replaced: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    contributed: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    docs_path: Optional[Path] = None
    plan_path: Optional[Path] = None
    summary_path: Optional[Path] = None
    fatal: Optional[str] = None

    def counts(self) -> Dict[str, int]:
        return {
            "replaced": len(self.replaced),
            "skipped": len(self.skipped),
            "created": len(self.created),
            "contributed": len(self.contributed),
            "kept": len(self.kept),
            "removed": len(self.removed),
            "failed": len(self.failures),
        }

    @property
    def status(self) -> SessionStatus:
        return SessionStatus.FAILED if self.fatal else SessionStatus.COMPLETED

    @property
    def exit_code(self) -> int:
        if self.fatal:
            return EXIT_FATAL
        if self.failures:
            return EXIT_PARTIAL
        return EXIT_OK


def _list_files(root: Path, *, skip_backups: bool = False) -> List[str]:
    files: List[str] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name != ".git")
        for filename in sorted(filenames):
            if skip_backups and is_backup_name(filename):
                continue
            files.append((Path(current) / filename).relative_to(root).as_posix())
    return files


def _governance_root_for(golden_image: Path, golden_rel: str) -> Optional[Path]:
    depth = len(Path(golden_rel).parts)
    parents = golden_image.parents
    if depth and len(parents) >= depth:
        return parents[depth - 1]
    return None


def locate_reference(repo_root: Path, config: Mapping[str, Any]) -> Optional[ReferenceTemplate]:
    """Search the configured locations for the golden image."""
    reference_cfg = section(config, "reference")
    golden_rel = str(reference_cfg.get("golden_image") or "core/templates/golden-image")
    for entry in reference_cfg.get("search_paths") or []:
        governance_root = (repo_root / str(entry)).resolve()
        candidate = governance_root / golden_rel
        if candidate.is_dir():
            LOGGER.debug("Found golden image at %s", candidate)
            return ReferenceTemplate(golden_image=candidate, governance_root=governance_root)
    return None


def fetch_reference_template(
    repo_root: Path,
    config: Mapping[str, Any],
    *,
    vcs: Optional[GitRepository] = None,
    update: bool = True,
    override: Optional[Path] = None,
    warnings: Optional[List[str]] = None,
) -> ReferenceTemplate:
    """Refresh the governance submodule when asked and return the golden image.

    Update problems are appended to ``warnings`` when a local reference is
    still usable; :class:`FatalSetupError` is raised when none can be found.
    """
    notes = warnings if warnings is not None else []
    reference_cfg = section(config, "reference")
    golden_rel = str(reference_cfg.get("golden_image") or "core/templates/golden-image")

    if override is not None:
        golden = Path(override)
        if not golden.is_absolute():
            golden = repo_root / golden
        golden = golden.resolve()
        if not golden.is_dir():
            raise FatalSetupError(f"Reference directory does not exist: {golden}")
        return ReferenceTemplate(golden_image=golden, governance_root=_governance_root_for(golden, golden_rel))

    update_error: Optional[str] = None
    updated = False
    if update and reference_cfg.get("update", True):
        submodule = str(reference_cfg.get("submodule") or "").strip()
        version = str(reference_cfg.get("version") or "").strip()
        if vcs is None:
            notes.append("Not a git repository; skipping reference update.")
        elif submodule:
            try:
                if Path(submodule) in vcs.submodule_paths():
                    vcs.update_submodule(submodule)
                    if version:
                        vcs.checkout(version, path=submodule)
                    updated = True
                else:
                    notes.append(f"Submodule {submodule} is not declared in .gitmodules; using the local reference.")
            except GitError as error:
                update_error = str(error)
                notes.append(f"Reference update failed: {error}")

    reference = locate_reference(repo_root, config)
    if reference is None:
        searched = ", ".join(str(entry) for entry in reference_cfg.get("search_paths") or [])
        message = f"Cannot find golden image {golden_rel} (searched: {searched or 'nothing configured'})"
        if update_error:
            message += f"; reference update failed: {update_error}"
        raise FatalSetupError(message)
    reference.updated = updated
    return reference


class AlignmentPipeline:
    """Run the alignment phases for one repository and one session."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        config: Mapping[str, Any],
        registry: Optional[ArtifactRegistry] = None,
        vcs: Optional[GitRepository] = None,
        options: Optional[AlignmentOptions] = None,
        chooser: Optional[Chooser] = None,
        rule_chooser: Optional[RuleChooser] = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self.config = config
        self.registry = registry or ArtifactRegistry.from_config(config, self.repo_root)
        self.vcs = vcs
        self.options = options or AlignmentOptions()
        self.chooser = chooser
        self.rule_chooser = rule_chooser
        self.alignment_cfg = section(config, "alignment")
        scratch = str(section(config, "paths").get("scratch") or ".ai/_scratch")
        self.scratch_dir = self.repo_root / scratch

        self.session_id = ""
        self.report: Optional[AlignmentReport] = None
        self.summary: Optional[RunSummary] = None
        self.resolver: Optional[DiffResolver] = None
        self._golden_files: List[str] = []

    # ------------------------------------------------------------------ run
    def run(self) -> AlignmentReport:
        """Execute every phase and return the report; raises only on registry I/O."""
        self.session_id = self.registry.init_session("align")
        report = AlignmentReport(session_id=self.session_id, dry_run=self.options.dry_run)
        self.report = report
        summary = RunSummary.start(self.registry, self.session_id, "align", scratch_dir=self.scratch_dir)
        self.summary = summary
        report.summary_path = summary.path
        self.resolver = DiffResolver(
            self.registry,
            self.session_id,
            contributions_root=self.scratch_dir / f"contributions-{self.session_id}",
            dry_run=self.options.dry_run,
            chooser=self.chooser,
        )

        try:
            self._run_phases(report, summary)
        except BaseException:
            summary.failure("Alignment aborted unexpectedly")
            summary.finish(SessionStatus.FAILED.value)
            self._complete(SessionStatus.FAILED)
            raise

        summary.finish(report.status.value)
        self._complete(report.status)
        return report

    def _run_phases(self, report: AlignmentReport, summary: RunSummary) -> None:
        handlers = {
            AlignmentPhase.RESOLVE_CONFLICTS: self.resolve_conflicts,
            AlignmentPhase.MIGRATE_LOCAL_RULES: self.migrate_local_rules,
            AlignmentPhase.CREATE_MISSING_FILES: self.create_missing_files,
            AlignmentPhase.GENERATE_DOCS: self.generate_docs,
            AlignmentPhase.SUMMARIZE: self.summarize,
        }
        for phase in ALIGNMENT_SEQUENCE:
            if phase == AlignmentPhase.SETUP_REFERENCE:
                try:
                    self.setup_reference()
                except FatalSetupError as error:
                    report.fatal = str(error)
                    summary.failure(str(error))
                    summary.phase(phase.value, "failed", "fatal")
                    return
                summary.phase(phase.value, "done", self._relative(report.reference.golden_image))
                continue

            before = len(report.failures)
            try:
                note = handlers[phase]() or ""
            except (OSError, RegistryError) as error:
                self._fail(f"{phase.value}: {error}")
                summary.phase(phase.value, "failed", str(error))
                continue
            status = "done" if len(report.failures) == before else "done with failures"
            summary.phase(phase.value, status, note)

    def _complete(self, status: SessionStatus) -> None:
        try:
            self.registry.complete_session(self.session_id, status)
        except RegistryError as error:
            LOGGER.warning("Unable to mark session %s as %s: %s", self.session_id, status.value, error)

    # -------------------------------------------------------------- helpers
    def _relative(self, path: Path) -> str:
        return relative_to_root(path, self.repo_root)

    def _fail(self, message: str) -> None:
        self.report.failures.append(message)
        self.summary.failure(message)

    def _warn(self, message: str) -> None:
        self.report.warnings.append(message)
        self.summary.warning(message)

    def _register(self, path: Path, produced_by: str, classification: Classification, kind=ArtifactKind.FILE) -> None:
        self.registry.register_artifact(self.session_id, path, kind, produced_by, classification)

    def _record_outcome(self, relative: str, outcome: ResolutionOutcome) -> None:
        verb = "would " if outcome.dry_run else ""
        if outcome.contribution_path is not None:
            self.report.contributed.append(relative)
            self.summary.event(f"{verb}contribute {relative} -> {self._relative(outcome.contribution_path)}")
        if outcome.replaced:
            self.report.replaced.append(relative)
            backup = self._relative(outcome.backup_path) if outcome.backup_path else "-"
            self.summary.event(f"{verb}replace {relative} (backup {backup})")
        elif outcome.decision.action == ConflictAction.KEEP_LOCAL:
            self.report.kept.append(relative)
            self.summary.event(f"keep local {relative}")

    def _resolve_conflict(self, local: Path, reference: Path, relative: str, produced_by: str) -> None:
        comparison = compare(local, reference)
        if comparison.identical:
            self.report.skipped.append(relative)
            return
        decision = self.resolver.decide(comparison, interactive=self.options.interactive)
        outcome = self.resolver.resolve(decision, classification=Classification.B, produced_by=produced_by)
        self._record_outcome(relative, outcome)

    def _remove_local(self, local: Path, relative: str, produced_by: str, reason: str) -> None:
        if self.options.dry_run:
            self.summary.event(f"would delete {relative} ({reason})")
        else:
            local.unlink()
            # The path no longer exists, so cleanup will report it as missing.
            self._register(local, produced_by, Classification.C)
            self.summary.event(f"delete {relative} ({reason})")
        self.report.removed.append(relative)

    def _ensure_parent(self, target: Path, produced_by: str) -> None:
        """Create missing parent directories, registering the topmost one created."""
        missing: List[Path] = []
        parent = target.parent
        while not parent.exists() and parent != self.repo_root:
            missing.append(parent)
            parent = parent.parent
        if not missing:
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        self._register(missing[-1], produced_by, Classification.B, kind=ArtifactKind.DIRECTORY)

    # --------------------------------------------------------------- phases
    def setup_reference(self) -> ReferenceTemplate:
        warnings: List[str] = []
        try:
            reference = fetch_reference_template(
                self.repo_root,
                self.config,
                vcs=self.vcs,
                update=not self.options.skip_reference_update,
                override=self.options.reference_override,
                warnings=warnings,
            )
        finally:
            for message in warnings:
                self._warn(message)
        self.report.reference = reference
        self._golden_files = _list_files(reference.golden_image)
        return reference

    def resolve_conflicts(self) -> str:
        golden = self.report.reference.golden_image
        managed = [str(entry) for entry in self.alignment_cfg.get("managed_files") or []] or self._golden_files
        for relative in managed:
            local = self.repo_root / relative
            reference = golden / relative
            try:
                self._resolve_conflict(local, reference, relative, AlignmentPhase.RESOLVE_CONFLICTS.value)
            except MissingSideError as error:
                if error.side == "local":
                    continue
                self._fail(f"Managed file {relative} is missing from the reference: {error}")
            except (OSError, RegistryError) as error:
                self._fail(f"Failed to resolve {relative}: {error}")
        return f"{len(managed)} managed files"

    def migrate_local_rules(self) -> str:
        local_dir = self.repo_root / str(self.alignment_cfg.get("local_rules_dir") or ".ai/rules/local")
        reference_dir = self.report.reference.golden_image / str(
            self.alignment_cfg.get("reference_rules_dir") or ".ai/rules"
        )
        if not local_dir.is_dir():
            return "no local rules"

        produced_by = AlignmentPhase.MIGRATE_LOCAL_RULES.value
        rule_files = _list_files(local_dir, skip_backups=True)
        for name in rule_files:
            local = local_dir / name
            reference = reference_dir / name
            relative = self._relative(local)
            try:
                if not reference.is_file():
                    self._handle_local_only_rule(local, relative, produced_by)
                    continue
                comparison = compare(local, reference)
                if comparison.identical:
                    self._remove_local(local, relative, produced_by, "identical to reference")
                    continue
                decision = self.resolver.decide(comparison, interactive=self.options.interactive)
                outcome = self.resolver.resolve(decision, classification=Classification.B, produced_by=produced_by)
                self._record_outcome(relative, outcome)
                if outcome.replaced:
                    # The reference rule now applies; the override survives in its backup.
                    self._remove_local(local, relative, produced_by, "superseded by reference rule")
            except (OSError, RegistryError, ValueError) as error:
                self._fail(f"Failed to migrate {relative}: {error}")
        return f"{len(rule_files)} local rules"

    def _handle_local_only_rule(self, local: Path, relative: str, produced_by: str) -> None:
        choice = "keep"
        if self.options.interactive and self.rule_chooser is not None:
            choice = self.rule_chooser(local)
            if choice not in _RULE_CHOICES:
                raise ValueError(f"Unknown rule action: {choice}")
        if choice == "contribute":
            target = self.resolver.contribute(local, produced_by=produced_by)
            self.report.contributed.append(relative)
            verb = "would " if self.options.dry_run else ""
            self.summary.event(f"{verb}contribute {relative} -> {self._relative(target)}")
        elif choice == "delete":
            self._remove_local(local, relative, produced_by, "local-only rule")
        else:
            self.report.kept.append(relative)
            self.summary.event(f"keep local-only rule {relative}")

    def _create_mappings(self) -> List[CreateMapping]:
        configured = self.alignment_cfg.get("create_missing") or []
        if not configured:
            return [CreateMapping(target=name, template=name) for name in self._golden_files]
        mappings: List[CreateMapping] = []
        for entry in configured:
            if isinstance(entry, Mapping) and entry.get("target"):
                target = str(entry["target"])
                mappings.append(CreateMapping(target=target, template=str(entry.get("template") or target)))
            elif isinstance(entry, str):
                mappings.append(CreateMapping(target=entry, template=entry))
            else:
                self._fail(f"Invalid create_missing entry: {entry!r}")
        return mappings

    def create_missing_files(self) -> str:
        golden = self.report.reference.golden_image
        produced_by = AlignmentPhase.CREATE_MISSING_FILES.value
        mappings = self._create_mappings()
        for mapping in mappings:
            target = self.repo_root / mapping.target
            template = golden / mapping.template
            if os.path.lexists(target):
                continue
            if not template.is_file():
                self._fail(f"Template {mapping.template} for {mapping.target} is missing from the reference")
                continue
            if self.options.dry_run:
                self.report.created.append(mapping.target)
                self.summary.event(f"would create {mapping.target}")
                continue
            try:
                self._ensure_parent(target, produced_by)
                shutil.copyfile(template, target)
                self._register(target, produced_by, Classification.B)
            except (OSError, RegistryError) as error:
                self._fail(f"Failed to create {mapping.target}: {error}")
                continue
            self.report.created.append(mapping.target)
            self.summary.event(f"create {mapping.target}")
        self._update_gitignore(produced_by)
        return f"{len(mappings)} candidates"

    def _update_gitignore(self, produced_by: str) -> None:
        """Append missing scratch and backup patterns to ``.gitignore``.

        A newly created ``.gitignore`` is registered as an artifact. An existing
        one is only appended to and stays unregistered.
        """
        patterns = [str(item) for item in self.alignment_cfg.get("gitignore_patterns") or []]
        gitignore = self.repo_root / ".gitignore"
        try:
            existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else None
        except OSError as error:
            self._fail(f"Failed to read .gitignore: {error}")
            return
        present = set((existing or "").splitlines())
        missing = [pattern for pattern in patterns if pattern not in present]
        if not missing:
            return
        self.report.ignored.extend(missing)
        if self.options.dry_run:
            self.summary.event(f"would add to .gitignore: {', '.join(missing)}")
            return
        prefix = existing or ""
        if prefix and not prefix.endswith("\n"):
            prefix += "\n"
        try:
            atomic_write_text(gitignore, prefix + "\n".join(missing) + "\n")
            if existing is None:
                self._register(gitignore, produced_by, Classification.B)
        except (OSError, RegistryError) as error:
            self._fail(f"Failed to update .gitignore: {error}")
            return
        self.summary.event(f"add to .gitignore: {', '.join(missing)}")

    def generate_docs(self) -> str:
        docs_path = self.repo_root / str(self.alignment_cfg.get("docs_path") or ".ai/AUTOMATION.md")
        relative = self._relative(docs_path)
        try:
            content = render_automation_docs(self.repo_root, self.report.reference, self.alignment_cfg)
        except OSError as error:
            self._fail(f"Failed to render {relative}: {error}")
            return "render failed"
        if self.options.dry_run:
            self.summary.event(f"would write {relative}")
            return "dry run"
        try:
            self._ensure_parent(docs_path, AlignmentPhase.GENERATE_DOCS.value)
            atomic_write_text(docs_path, content)
            self._register(docs_path, AlignmentPhase.GENERATE_DOCS.value, Classification.B)
        except (OSError, RegistryError) as error:
            self._fail(f"Failed to write {relative}: {error}")
            return "write failed"
        self.report.docs_path = docs_path
        self.summary.event(f"write {relative}")
        return relative

    def summarize(self) -> str:
        counts = self.report.counts()
        for key, value in counts.items():
            self.summary.counts[key] = value
        if self.options.dry_run:
            plan_path = self.scratch_dir / f"ALIGNMENT_PLAN-{self.session_id}.md"
            atomic_write_text(plan_path, render_alignment_plan(self.report, self.summary.events))
            self._register(plan_path, AlignmentPhase.SUMMARIZE.value, Classification.C)
            self.report.plan_path = plan_path
        return ", ".join(f"{key}={value}" for key, value in counts.items())


def render_automation_docs(
    repo_root: Path,
    reference: ReferenceTemplate,
    alignment_cfg: Mapping[str, Any],
) -> str:
    """Build the ``AUTOMATION.md`` overview of entry points, rules and tooling."""
    lines = [
        "# Automation",
        "",
        "Generated by `aigov align`; regenerated on every run.",
        "",
        "## Entry Points",
        "",
        "| Command | Purpose |",
        "|---------|---------|",
    ]
    lines.extend(f"| `{command}` | {purpose} |" for command, purpose in AIGOV_COMMANDS)

    if reference.governance_root is not None:
        automation_dir = reference.governance_root / "core" / "automation"
        if automation_dir.is_dir():
            for script in sorted(automation_dir.glob("*.sh")):
                lines.append(f"| `{script.name}` | Governance automation script |")

    lines.extend(["", "## Reference Rules", ""])
    rules_dir = reference.golden_image / str(alignment_cfg.get("reference_rules_dir") or ".ai/rules")
    rule_files = _list_files(rules_dir) if rules_dir.is_dir() else []
    if rule_files:
        lines.extend(f"- `{name}`" for name in rule_files)
    else:
        lines.append("- (none)")

    lines.extend(["", "## Discovered Tooling", ""])
    tools = discover_tooling(repo_root)
    if tools:
        lines.extend(["| Tool | Config | Docs |", "|------|--------|------|"])
        lines.extend(f"| {tool.name} | `{tool.config}` | {tool.docs} |" for tool in tools)
    else:
        lines.append("- (none detected)")
    lines.append("")
    return "\n".join(lines)


def _section(title: str, entries: Sequence[str]) -> List[str]:
    lines = ["", f"## {title}", ""]
    if entries:
        lines.extend(f"- `{entry}`" for entry in entries)
    else:
        lines.append("- (none)")
    return lines


def render_alignment_plan(report: AlignmentReport, events: Sequence[str]) -> str:
    lines = [
        f"# Alignment Plan ({report.session_id})",
        "",
        "Dry run: no repository files were changed.",
    ]
    if report.reference is not None:
        lines.append(f"Reference: `{report.reference.golden_image.as_posix()}`")
    lines.extend(_section("Files to Replace", report.replaced))
    lines.extend(_section("Files to Create", report.created))
    lines.extend(_section("Contributions", report.contributed))
    lines.extend(_section("Local Files Kept", report.kept))
    lines.extend(_section("Local Files to Delete", report.removed))
    lines.extend(_section(".gitignore Additions", report.ignored))
    lines.extend(["", "## All Planned Actions", ""])
    if events:
        lines.extend(f"- {event}" for event in events)
    else:
        lines.append("- (nothing to do)")
    if report.failures:
        lines.extend(["", "## Problems", ""])
        lines.extend(f"- {failure}" for failure in report.failures)
    lines.extend(
        [
            "",
            "## Next Steps",
            "",
            "- Apply: `aigov align --non-interactive`",
            "- Defer to an issue: `aigov align --defer`",
            f"- Discard this plan: `aigov cleanup --session {report.session_id}`",
            "",
        ]
    )
    return "\n".join(lines)


@dataclass(slots=True)
class DeferralResult:
    session_id: str
    plan_path: Path
    issue_url: Optional[str] = None
    fallback_path: Optional[Path] = None
    reason: Optional[str] = None


def latest_alignment_plan(scratch_dir: Path) -> Optional[Path]:
    # Session ids sort chronologically.
    plans = sorted(scratch_dir.glob("ALIGNMENT_PLAN-*.md"))
    return plans[-1] if plans else None


def defer_alignment(
    repo_root: Path | str,
    *,
    config: Mapping[str, Any],
    sink: Optional[IssueSink],
    registry: Optional[ArtifactRegistry] = None,
) -> DeferralResult:
    """File the most recent alignment plan as an issue, or append it to a local file."""
    root = Path(repo_root).resolve()
    registry = registry or ArtifactRegistry.from_config(config, root)
    scratch_dir = root / str(section(config, "paths").get("scratch") or ".ai/_scratch")
    plan_path = latest_alignment_plan(scratch_dir)
    if plan_path is None:
        raise FileNotFoundError(f"No alignment plan found in {scratch_dir}; run `aigov align --dry-run` first")

    session_id = registry.init_session("align-defer")
    summary = RunSummary.start(registry, session_id, "align-defer", scratch_dir=scratch_dir)
    result = DeferralResult(session_id=session_id, plan_path=plan_path)
    plan_text = plan_path.read_text(encoding="utf-8")
    labels = [str(label) for label in section(config, "issues").get("alignment_labels") or []]

    url, reason = file_issue(sink, "Governance alignment", plan_text, labels)
    if url:
        result.issue_url = url
        summary.event(f"filed {relative_to_root(plan_path, root)} as {url}")
    else:
        result.reason = reason
        summary.warning(reason or "issue creation failed")
        fallback = scratch_dir / "DEFERRED_ALIGNMENT.md"
        existed = fallback.exists()
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        entry = f"\n---\n\n<!-- deferred {stamp} from {plan_path.name} -->\n\n{plan_text}\n"
        previous = fallback.read_text(encoding="utf-8") if existed else "# Deferred Alignment\n"
        atomic_write_text(fallback, previous + entry)
        if not existed:
            registry.register_artifact(session_id, fallback, ArtifactKind.FILE, "defer", Classification.C)
        result.fallback_path = fallback
        summary.event(f"appended plan to {relative_to_root(fallback, root)}")

    summary.phase("defer", "done", result.issue_url or "local fallback")
    summary.finish(SessionStatus.COMPLETED.value)
    registry.complete_session(session_id, SessionStatus.COMPLETED)
    return result


__all__ = [
    "AlignmentOptions",
    "AlignmentPipeline",
    "AlignmentReport",
    "CreateMapping",
    "DeferralResult",
    "FatalSetupError",
    "ReferenceTemplate",
    "RuleChooser",
    "defer_alignment",
    "fetch_reference_template",
    "latest_alignment_plan",
    "locate_reference",
    "render_alignment_plan",
    "render_automation_docs",
]
