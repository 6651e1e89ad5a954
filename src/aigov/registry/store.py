"""Durable, session-keyed registry of artifacts produced by automation runs."""

from __future__ import annotations

import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..utils.files import atomic_write_text
from .schema import (
    Artifact,
    ArtifactKind,
    Classification,
    CleanupEntry,
    CleanupOutcome,
    CleanupReport,
    RegistryDocument,
    Session,
    SessionStatus,
    SweepReport,
)

DEFAULT_REGISTRY_PATH = Path(".ai/_scratch/.artifact-registry.json")
LOGGER = logging.getLogger(__name__)

_TERMINAL_STATUSES = {SessionStatus.COMPLETED, SessionStatus.FAILED}


class RegistryError(RuntimeError):
    """Raised when the registry cannot be read, written or transitioned."""


class SessionNotFoundError(RegistryError, KeyError):
    """Raised when an operation requires a session id the registry does not know."""

    def __str__(self) -> str:  # KeyError quotes its argument otherwise.
        return RuntimeError.__str__(self)


class ArtifactRegistry:
    """JSON-file registry holding every session of one repository.

    The whole document is rewritten on each mutation; concurrent writers are
    not supported.
    """

    def __init__(self, repo_root: Path | str, registry_path: Path | str | None = None) -> None:
        self.repo_root = Path(repo_root).resolve()
        candidate = Path(registry_path) if registry_path is not None else DEFAULT_REGISTRY_PATH
        if not candidate.is_absolute():
            candidate = self.repo_root / candidate
        self.path = candidate

    @classmethod
    def from_config(cls, config: Mapping[str, Any], repo_root: Path | str) -> "ArtifactRegistry":
        paths = config.get("paths") or {}
        registry_value = paths.get("registry")
        if isinstance(registry_value, str) and registry_value.strip():
            return cls(repo_root, registry_value.strip())
        return cls(repo_root)

    # ------------------------------------------------------------------ io
    def _load(self) -> RegistryDocument:
        if not self.path.exists():
            return RegistryDocument()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as error:
            raise RegistryError(f"Unable to read artifact registry {self.path}: {error}") from error
        try:
            return RegistryDocument.model_validate(payload)
        except ValidationError as error:
            raise RegistryError(f"Artifact registry {self.path} is malformed: {error}") from error

    def _save(self, document: RegistryDocument) -> None:
        serialised = json.dumps(document.model_dump(mode="json"), indent=2) + "\n"
        try:
            atomic_write_text(self.path, serialised)
        except OSError as error:
            raise RegistryError(f"Unable to write artifact registry {self.path}: {error}") from error

    @staticmethod
    def _require(document: RegistryDocument, session_id: str) -> Session:
        session = document.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return session

    # ------------------------------------------------------------ sessions
    @staticmethod
    def _new_session_id(document: RegistryDocument) -> str:
        base = datetime.now().strftime("%Y%m%d-%H%M%S")
        candidate = base
        counter = 1
        while candidate in document.sessions:
            counter += 1
            candidate = f"{base}-{counter:02d}"
        return candidate

    def init_session(self, script: str) -> str:
        """Create a new ``active`` session and return its id."""
        document = self._load()
        session_id = self._new_session_id(document)
        document.sessions[session_id] = Session(id=session_id, script=script)
        self._save(document)
        LOGGER.debug("Started session %s for %s", session_id, script)
        return session_id

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._load().sessions.get(session_id)

    def list_sessions(self) -> List[Session]:
        document = self._load()
        return [document.sessions[key] for key in sorted(document.sessions)]

    def complete_session(self, session_id: str, status: SessionStatus | str) -> None:
        """Move a session to a terminal ``completed`` or ``failed`` state."""
        target = SessionStatus(status)
        if target not in _TERMINAL_STATUSES:
            raise RegistryError(f"Sessions can only be completed as completed or failed, not {target.value}")
        document = self._load()
        session = self._require(document, session_id)
        if session.status == SessionStatus.DESTROYED:
            raise RegistryError(f"Session {session_id} was destroyed and cannot change status")
        session.status = target
        self._save(document)

    # ----------------------------------------------------------- artifacts
    def _normalise_path(self, path: Path | str) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            return candidate.as_posix()
        # Resolve the parent only so a registered symlink stays the link itself.
        for option in (candidate, Path(os.path.realpath(candidate.parent)) / candidate.name):
            try:
                return option.relative_to(self.repo_root).as_posix()
            except ValueError:
                continue
        return candidate.as_posix()

    def register_artifact(
        self,
        session_id: str,
        path: Path | str,
        kind: ArtifactKind | str = ArtifactKind.FILE,
        produced_by: str = "unknown",
        classification: Classification | str = Classification.C,
    ) -> Artifact:
        """Append an artifact to the session; re-registering a path keeps both entries."""
        document = self._load()
        session = self._require(document, session_id)
        if session.status == SessionStatus.DESTROYED:
            raise RegistryError(f"Session {session_id} was destroyed; refusing to register {path}")
        artifact = Artifact(
            path=self._normalise_path(path),
            kind=ArtifactKind(kind),
            produced_by=produced_by,
            classification=Classification(classification),
        )
        session.artifacts.append(artifact)
        self._save(document)
        return artifact

    def list_artifacts(self, session_id: str) -> List[Artifact]:
        """Return the session's artifacts in insertion order (empty for unknown ids)."""
        session = self._load().sessions.get(session_id)
        if session is None:
            return []
        return list(session.artifacts)

    # ------------------------------------------------------------- cleanup
    def _resolve_inside_repo(self, relative: str) -> Path:
        joined = os.path.normpath(os.path.join(str(self.repo_root), relative))
        root = str(self.repo_root)
        if os.path.commonpath([root, joined]) != root or joined == root:
            raise RegistryError(f"Refusing to delete path outside the repository: {relative}")
        return Path(joined)

    @staticmethod
    def _delete(target: Path, kind: ArtifactKind) -> None:
        if kind == ArtifactKind.DIRECTORY:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                raise RegistryError(f"Expected a directory at {target}")
            return
        if target.is_dir() and not target.is_symlink():
            raise RegistryError(f"Expected a file at {target} but found a directory")
        target.unlink()

    def cleanup_session(self, session_id: str, *, dry_run: bool = False) -> CleanupReport:
        """Delete every artifact of the session, newest first, and mark it destroyed.

        Missing paths are reported as ``missing``; failures on individual
        artifacts are recorded and the pass continues.
        """
        document = self._load()
        session = document.sessions.get(session_id)
        report = CleanupReport(session_id=session_id, dry_run=dry_run, known_session=session is not None)
        if session is None:
            return report

        for artifact in reversed(session.artifacts):
            try:
                target = self._resolve_inside_repo(artifact.path)
            except RegistryError as error:
                report.entries.append(
                    CleanupEntry(path=artifact.path, kind=artifact.kind, outcome=CleanupOutcome.ERROR, message=str(error))
                )
                continue

            if not os.path.lexists(target):
                outcome = CleanupOutcome.MISSING
                message = ""
            elif dry_run:
                outcome = CleanupOutcome.WOULD_REMOVE
                message = ""
            else:
                try:
                    self._delete(target, artifact.kind)
                except (OSError, RegistryError) as error:
                    LOGGER.warning("Failed to remove %s: %s", artifact.path, error)
                    outcome = CleanupOutcome.ERROR
                    message = str(error)
                else:
                    outcome = CleanupOutcome.REMOVED
                    message = ""
            report.entries.append(
                CleanupEntry(path=artifact.path, kind=artifact.kind, outcome=outcome, message=message)
            )

        if not dry_run:
            session.status = SessionStatus.DESTROYED
            self._save(document)
        return report

    def cleanup_paths(self, paths: Sequence[Path | str], *, dry_run: bool = False) -> SweepReport:
        """Delete scratch paths directly and destroy every session that owned one.

        A session is affected when any of its artifacts is a removed path or
        lies beneath one. The registry file itself is never removed.
        """
        document = self._load()
        report = SweepReport(dry_run=dry_run)
        gone: List[str] = []
        for path in paths:
            relative = self._normalise_path(path)
            try:
                target = self._resolve_inside_repo(relative)
                if target == self.path:
                    raise RegistryError(f"Refusing to delete the artifact registry: {relative}")
            except RegistryError as error:
                report.entries.append(
                    CleanupEntry(path=relative, kind=ArtifactKind.FILE, outcome=CleanupOutcome.ERROR, message=str(error))
                )
                continue

            kind = ArtifactKind.DIRECTORY if target.is_dir() and not target.is_symlink() else ArtifactKind.FILE
            outcome = CleanupOutcome.WOULD_REMOVE if dry_run else CleanupOutcome.REMOVED
            message = ""
            if not os.path.lexists(target):
                outcome = CleanupOutcome.MISSING
            elif not dry_run:
                try:
                    self._delete(target, kind)
                except (OSError, RegistryError) as error:
                    LOGGER.warning("Failed to remove %s: %s", relative, error)
                    outcome = CleanupOutcome.ERROR
                    message = str(error)
            if outcome in (CleanupOutcome.REMOVED, CleanupOutcome.WOULD_REMOVE):
                gone.append(relative)
            report.entries.append(CleanupEntry(path=relative, kind=kind, outcome=outcome, message=message))

        for session in document.sessions.values():
            if session.status == SessionStatus.DESTROYED:
                continue
            if any(_is_within(artifact.path, gone) for artifact in session.artifacts):
                report.sessions.append(session.id)
                if not dry_run:
                    session.status = SessionStatus.DESTROYED
        if report.sessions and not dry_run:
            self._save(document)
        return report


def _is_within(path: str, roots: Sequence[str]) -> bool:
    return any(path == root or path.startswith(f"{root}/") for root in roots)


__all__ = [
    "ArtifactRegistry",
    "DEFAULT_REGISTRY_PATH",
    "RegistryError",
    "SessionNotFoundError",
]
