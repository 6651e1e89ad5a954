"""Tool integrations used by the automation pipelines."""

from .diff_resolver import (
    Comparison,
    ConflictAction,
    ConflictDecision,
    DiffResolver,
    MissingSideError,
    ResolutionOutcome,
    compare,
)
from .issues import GhIssueSink, IssueSink, IssueSinkError, IssueSinkUnavailable, file_issue
from .run_summary import RunSummary
from .tooling import DetectedTool, discover_tooling
from .verification import VerificationCheck, VerificationResult
from .vcs import GitError, GitRepository

__all__ = [
    "Comparison",
    "ConflictAction",
    "ConflictDecision",
    "DetectedTool",
    "DiffResolver",
    "GhIssueSink",
    "GitError",
    "GitRepository",
    "IssueSink",
    "IssueSinkError",
    "IssueSinkUnavailable",
    "MissingSideError",
    "ResolutionOutcome",
    "RunSummary",
    "VerificationCheck",
    "VerificationResult",
    "compare",
    "discover_tooling",
    "file_issue",
]
