"""Compare local files with their reference template and apply conflict decisions.

Non-interactive resolution always replaces a differing local file with the
reference content and never offers a contribution. Local customisations then
survive only in the ``.backup-<session>`` sidecar written next to the file.
"""

from __future__ import annotations

import difflib
import logging
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..registry import ArtifactKind, ArtifactRegistry, Classification

LOGGER = logging.getLogger(__name__)

_BACKUP_SUFFIX = re.compile(r"\.backup-\d{8}-\d{6}(?:-\d+)?(?:\.\d+)?$")


class ConflictAction(str, Enum):
    """Resolution applied to a local file that differs from the reference."""

    REPLACE = "replace"
    KEEP_LOCAL = "keep-local"
    CONTRIBUTE = "contribute"


class MissingSideError(FileNotFoundError):
    """Raised by :func:`compare` when one side of the comparison cannot be read."""

    def __init__(self, side: str, path: Path, reason: str = "") -> None:
        self.side = side
        self.path = path
        detail = f": {reason}" if reason else ""
        super().__init__(f"{side} file unavailable: {path}{detail}")


@dataclass(slots=True)
class Comparison:
    """Result of comparing one local file with its reference counterpart."""

    local_path: Path
    reference_path: Path
    identical: bool
    diff_text: str
    local_line_count: int
    reference_line_count: int


@dataclass(slots=True)
class ConflictDecision:
    """Action chosen for one conflict; ``contribute`` may accompany any action."""

    local_path: Path
    reference_path: Path
    action: ConflictAction
    contribute: bool = False
    contribution_target: Optional[Path] = None

    @property
    def wants_contribution(self) -> bool:
        return self.contribute or self.action == ConflictAction.CONTRIBUTE


@dataclass(slots=True)
class ResolutionOutcome:
    """What :meth:`DiffResolver.resolve` did (or would do in dry-run mode)."""

    decision: ConflictDecision
    applied: bool
    replaced: bool = False
    backup_path: Optional[Path] = None
    contribution_path: Optional[Path] = None
    dry_run: bool = False


Chooser = Callable[[Comparison], ConflictDecision]


def _read(path: Path, side: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as error:
        raise MissingSideError(side, path) from error
    except IsADirectoryError as error:
        raise MissingSideError(side, path, "is a directory") from error
    except OSError as error:
        raise MissingSideError(side, path, str(error)) from error


def compare(local_path: Path | str, reference_path: Path | str, *, context_lines: int = 3) -> Comparison:
    """Compare ``local_path`` against ``reference_path`` without touching either."""
    local = Path(local_path)
    reference = Path(reference_path)
    local_bytes = _read(local, "local")
    reference_bytes = _read(reference, "reference")

    local_text = local_bytes.decode("utf-8", errors="replace")
    reference_text = reference_bytes.decode("utf-8", errors="replace")
    identical = local_bytes == reference_bytes
    diff_text = ""
    if not identical:
        diff_text = "".join(
            difflib.unified_diff(
                local_text.splitlines(keepends=True),
                reference_text.splitlines(keepends=True),
                fromfile=local.as_posix(),
                tofile=reference.as_posix(),
                n=context_lines,
            )
        )
    return Comparison(
        local_path=local,
        reference_path=reference,
        identical=identical,
        diff_text=diff_text,
        local_line_count=len(local_text.splitlines()),
        reference_line_count=len(reference_text.splitlines()),
    )


def is_backup_name(name: str) -> bool:
    return _BACKUP_SUFFIX.search(name) is not None


def backup_path_for(local_path: Path, session_id: str) -> Path:
    """Return the first unused ``.backup-<session>`` sidecar path for ``local_path``."""
    base = Path(f"{local_path}.backup-{session_id}")
    candidate = base
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = Path(f"{base}.{counter}")
    return candidate


class DiffResolver:
    """Apply conflict decisions for one session, registering every write."""

    def __init__(
        self,
        registry: ArtifactRegistry,
        session_id: str,
        *,
        contributions_root: Path,
        dry_run: bool = False,
        chooser: Optional[Chooser] = None,
    ) -> None:
        self.registry = registry
        self.session_id = session_id
        self.repo_root = registry.repo_root
        self.contributions_root = contributions_root
        self.dry_run = dry_run
        self.chooser = chooser
        self._contributions_ready = False

    def decide(self, comparison: Comparison, *, interactive: bool) -> ConflictDecision:
        """Choose an action; non-interactive runs always replace and never contribute."""
        if interactive and self.chooser is not None:
            decision = self.chooser(comparison)
        else:
            decision = ConflictDecision(
                local_path=comparison.local_path,
                reference_path=comparison.reference_path,
                action=ConflictAction.REPLACE,
            )
        if decision.wants_contribution and decision.contribution_target is None:
            decision.contribution_target = self.contribution_target_for(decision.local_path)
        return decision

    def contribution_target_for(self, local_path: Path) -> Path:
        try:
            relative = local_path.resolve().relative_to(self.repo_root)
        except ValueError:
            relative = Path(local_path.name)
        return self.contributions_root / relative

    def resolve(
        self,
        decision: ConflictDecision,
        *,
        classification: Classification | str = Classification.B,
        produced_by: str = "resolve",
    ) -> ResolutionOutcome:
        """Execute ``decision``; contribution is applied before any replacement."""
        outcome = ResolutionOutcome(decision=decision, applied=not self.dry_run, dry_run=self.dry_run)

        if decision.wants_contribution:
            target = decision.contribution_target or self.contribution_target_for(decision.local_path)
            outcome.contribution_path = self.contribute(decision.local_path, target, produced_by=produced_by)

        if decision.action == ConflictAction.REPLACE:
            outcome.backup_path = backup_path_for(decision.local_path, self.session_id)
            if not self.dry_run:
                shutil.copy2(decision.local_path, outcome.backup_path)
                shutil.copyfile(decision.reference_path, decision.local_path)
                self.registry.register_artifact(
                    self.session_id,
                    decision.local_path,
                    ArtifactKind.FILE,
                    produced_by,
                    classification,
                )
                LOGGER.debug("Replaced %s (backup %s)", decision.local_path, outcome.backup_path)
            outcome.replaced = True
        elif decision.action == ConflictAction.KEEP_LOCAL:
            LOGGER.debug("Keeping local %s", decision.local_path)

        return outcome

    def contribute(self, local_path: Path, target: Optional[Path] = None, *, produced_by: str = "contribute") -> Path:
        """Copy ``local_path`` into the session's contributions directory."""
        destination = target or self.contribution_target_for(local_path)
        if self.dry_run:
            return destination
        if not self._contributions_ready:
            if not self.contributions_root.exists():
                self.contributions_root.mkdir(parents=True, exist_ok=True)
                self.registry.register_artifact(
                    self.session_id,
                    self.contributions_root,
                    ArtifactKind.DIRECTORY,
                    produced_by,
                    Classification.C,
                )
            self._contributions_ready = True
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(local_path, destination)
        self.registry.register_artifact(
            self.session_id,
            destination,
            ArtifactKind.FILE,
            produced_by,
            Classification.C,
        )
        return destination


__all__ = [
    "Chooser",
    "Comparison",
    "ConflictAction",
    "ConflictDecision",
    "DiffResolver",
    "MissingSideError",
    "ResolutionOutcome",
    "backup_path_for",
    "compare",
    "is_backup_name",
]
