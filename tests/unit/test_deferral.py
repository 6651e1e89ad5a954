from __future__ import annotations

from aigov.planning.deferral import defer_tasks
from aigov.planning.schemas import PlanTask, Priority
from aigov.registry import ArtifactRegistry
from aigov.tools.issues import IssueSink, IssueSinkError, IssueSinkUnavailable


class _FlakySink(IssueSink):
    """Files the first task and rejects the rest."""

    def __init__(self) -> None:
        self.calls = 0

    def create_issue(self, title, body, labels=()):
        self.calls += 1
        if self.calls == 1:
            return "https://example.invalid/issues/1"
        raise IssueSinkError("rate limited")


class _AbsentSink(IssueSink):
    def create_issue(self, title, body, labels=()):
        raise IssueSinkUnavailable("gh not installed")


def _tasks() -> list[PlanTask]:
    return [
        PlanTask(id="02", name="Add cache", priority=Priority.P1, defer_impact="Slower queries."),
        PlanTask(id="03", name="Add metrics", priority=Priority.P2, defer_impact="No dashboards."),
    ]


def _defer(tmp_path, **kwargs):
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("plan")
    outcome = defer_tasks(
        _tasks(),
        run_dir=tmp_path / "run",
        feature="feature-cache",
        registry=registry,
        session_id=session_id,
        **kwargs,
    )
    return registry, session_id, outcome


def test_unavailable_sink_writes_every_task_locally(tmp_path) -> None:
    registry, session_id, outcome = _defer(tmp_path, sink=_AbsentSink(), use_issues=True)

    text = outcome.fallback_path.read_text(encoding="utf-8")
    assert "## 02: Add cache" in text
    assert "## 03: Add metrics" in text
    assert "Slower queries." in text
    assert "gh not installed" in text
    assert registry.list_artifacts(session_id)[-1].path == "run/DEFERRED_WORK.md"


def test_partial_filing_keeps_only_unfiled_tasks_local(tmp_path) -> None:
    _, _, outcome = _defer(tmp_path, sink=_FlakySink(), use_issues=True)

    assert outcome.issues == {"02": "https://example.invalid/issues/1"}
    text = outcome.fallback_path.read_text(encoding="utf-8")
    assert "## 03: Add metrics" in text
    assert "## 02:" not in text


def test_without_issue_flag_everything_goes_to_the_file(tmp_path) -> None:
    _, _, outcome = _defer(tmp_path, sink=_FlakySink(), use_issues=False)
    assert outcome.issues == {}
    assert outcome.local_only


def test_nothing_to_defer_writes_nothing(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("plan")
    outcome = defer_tasks([], run_dir=tmp_path, feature="x", registry=registry, session_id=session_id)
    assert outcome.fallback_path is None
