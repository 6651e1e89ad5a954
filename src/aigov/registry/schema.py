"""Typed records persisted by the artifact registry."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class SessionStatus(str, Enum):
    """Lifecycle states for a pipeline session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DESTROYED = "destroyed"


class ArtifactKind(str, Enum):
    """Filesystem shape of a registered artifact."""

    FILE = "file"
    DIRECTORY = "directory"


class Classification(str, Enum):
    """How an artifact relates to the repository it was produced in.

    ``A`` ships with the repository, ``B`` is a governance or process artifact
    and ``C`` is ephemeral scratch output that must never be committed.
    """

    A = "A"
    B = "B"
    C = "C"


class Artifact(RecordModel):
    """Single path created, modified or removed by a pipeline phase."""

    path: str
    kind: ArtifactKind = ArtifactKind.FILE
    produced_by: str = "unknown"
    classification: Classification = Classification.C
    registered_at: datetime = Field(default_factory=utc_now)


class Session(RecordModel):
    """One end-to-end pipeline run and the artifacts it owns."""

    id: str
    script: str
    created_at: datetime = Field(default_factory=utc_now)
    status: SessionStatus = SessionStatus.ACTIVE
    artifacts: List[Artifact] = Field(default_factory=list)


class RegistryDocument(RecordModel):
    """On-disk layout of the registry file."""

    version: str = "1.0"
    sessions: Dict[str, Session] = Field(default_factory=dict)


class CleanupOutcome(str, Enum):
    """Per-artifact result of a cleanup pass."""

    REMOVED = "removed"
    MISSING = "missing"
    WOULD_REMOVE = "would-remove"
    ERROR = "error"


class CleanupEntry(RecordModel):
    """Outcome for one artifact visited during cleanup."""

    path: str
    kind: ArtifactKind
    outcome: CleanupOutcome
    message: str = ""


class CleanupReport(RecordModel):
    """Aggregated result of :meth:`ArtifactRegistry.cleanup_session`."""

    session_id: str
    entries: List[CleanupEntry] = Field(default_factory=list)
    dry_run: bool = False
    known_session: bool = True

    @property
    def errors(self) -> List[CleanupEntry]:
        return [entry for entry in self.entries if entry.outcome == CleanupOutcome.ERROR]

    @property
    def removed(self) -> List[CleanupEntry]:
        return [entry for entry in self.entries if entry.outcome == CleanupOutcome.REMOVED]

    @property
    def ok(self) -> bool:
        return not self.errors


class SweepReport(RecordModel):
    """Result of removing scratch paths by category rather than by session."""

    entries: List[CleanupEntry] = Field(default_factory=list)
    sessions: List[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def errors(self) -> List[CleanupEntry]:
        return [entry for entry in self.entries if entry.outcome == CleanupOutcome.ERROR]

    @property
    def removed(self) -> List[CleanupEntry]:
        return [entry for entry in self.entries if entry.outcome == CleanupOutcome.REMOVED]


__all__ = [
    "Artifact",
    "ArtifactKind",
    "Classification",
    "CleanupEntry",
    "CleanupOutcome",
    "CleanupReport",
    "RegistryDocument",
    "Session",
    "SessionStatus",
    "SweepReport",
    "utc_now",
]
