"""Artifact registry: durable record of what each automation session produced."""

from .schema import (
    Artifact,
    ArtifactKind,
    Classification,
    CleanupEntry,
    CleanupOutcome,
    CleanupReport,
    Session,
    SessionStatus,
    SweepReport,
)
from .store import ArtifactRegistry, RegistryError, SessionNotFoundError

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactRegistry",
    "Classification",
    "CleanupEntry",
    "CleanupOutcome",
    "CleanupReport",
    "RegistryError",
    "Session",
    "SessionNotFoundError",
    "SessionStatus",
    "SweepReport",
]
