from __future__ import annotations

import json
import re

import pytest

from aigov.registry import (
    ArtifactKind,
    ArtifactRegistry,
    Classification,
    CleanupOutcome,
    RegistryError,
    SessionNotFoundError,
    SessionStatus,
)


def test_session_lifecycle_and_document_format(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("align")

    assert re.fullmatch(r"\d{8}-\d{6}(-\d{2})?", session_id)
    registry.register_artifact(session_id, tmp_path / "notes.md", ArtifactKind.FILE, "test", Classification.B)
    registry.register_artifact(session_id, "notes.md", ArtifactKind.FILE, "test", Classification.B)
    registry.complete_session(session_id, SessionStatus.COMPLETED)

    document = json.loads(registry.path.read_text(encoding="utf-8"))
    assert document["version"] == "1.0"
    session = document["sessions"][session_id]
    assert session["status"] == "completed"
    assert [artifact["path"] for artifact in session["artifacts"]] == ["notes.md", "notes.md"]
    assert session["artifacts"][0]["classification"] == "B"


def test_session_ids_are_unique_within_one_second(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    first = registry.init_session("plan")
    second = registry.init_session("plan")
    assert first != second
    assert [session.id for session in registry.list_sessions()] == sorted([first, second])


def test_unknown_sessions(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    assert registry.list_artifacts("20000101-000000") == []
    assert registry.get_session("20000101-000000") is None
    with pytest.raises(SessionNotFoundError):
        registry.complete_session("20000101-000000", SessionStatus.COMPLETED)
    with pytest.raises(SessionNotFoundError):
        registry.register_artifact("20000101-000000", "x.md")


def test_complete_session_rejects_non_terminal_status(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("align")
    with pytest.raises(RegistryError):
        registry.complete_session(session_id, SessionStatus.ACTIVE)


def test_cleanup_removes_in_reverse_order_and_tolerates_missing(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("plan")

    run_dir = tmp_path / ".ai" / "_scratch" / "feature-demo"
    run_dir.mkdir(parents=True)
    registry.register_artifact(session_id, run_dir, ArtifactKind.DIRECTORY, "plan", Classification.C)
    inner = run_dir / "FEATURE.md"
    inner.write_text("feature\n", encoding="utf-8")
    registry.register_artifact(session_id, inner, ArtifactKind.FILE, "plan", Classification.C)
    registry.register_artifact(session_id, tmp_path / "gone.md", ArtifactKind.FILE, "plan", Classification.C)

    report = registry.cleanup_session(session_id)

    assert [entry.path for entry in report.entries] == [
        "gone.md",
        ".ai/_scratch/feature-demo/FEATURE.md",
        ".ai/_scratch/feature-demo",
    ]
    assert [entry.outcome for entry in report.entries] == [
        CleanupOutcome.MISSING,
        CleanupOutcome.REMOVED,
        CleanupOutcome.REMOVED,
    ]
    assert report.ok
    assert not run_dir.exists()
    assert registry.get_session(session_id).status == SessionStatus.DESTROYED


def test_cleanup_refuses_paths_outside_repository(tmp_path) -> None:
    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    outside = tmp_path / "outside.txt"
    outside.write_text("keep me\n", encoding="utf-8")

    registry = ArtifactRegistry(repo_root)
    session_id = registry.init_session("align")
    registry.register_artifact(session_id, "../outside.txt")

    report = registry.cleanup_session(session_id)

    assert report.entries[0].outcome == CleanupOutcome.ERROR
    assert outside.exists()
    assert registry.get_session(session_id).status == SessionStatus.DESTROYED


def test_cleanup_records_kind_mismatch_and_continues(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("align")
    directory = tmp_path / "made-dir"
    directory.mkdir()
    other = tmp_path / "other.md"
    other.write_text("x\n", encoding="utf-8")
    registry.register_artifact(session_id, other)
    registry.register_artifact(session_id, directory, ArtifactKind.FILE)

    report = registry.cleanup_session(session_id)

    assert report.entries[0].outcome == CleanupOutcome.ERROR
    assert report.entries[1].outcome == CleanupOutcome.REMOVED
    assert directory.exists()
    assert not other.exists()


def test_cleanup_dry_run_keeps_files_and_status(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("align")
    target = tmp_path / "created.md"
    target.write_text("x\n", encoding="utf-8")
    registry.register_artifact(session_id, target)

    report = registry.cleanup_session(session_id, dry_run=True)

    assert report.entries[0].outcome == CleanupOutcome.WOULD_REMOVE
    assert target.exists()
    assert registry.get_session(session_id).status == SessionStatus.ACTIVE


def test_destroyed_session_cannot_be_reused(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("align")
    registry.cleanup_session(session_id)

    with pytest.raises(RegistryError):
        registry.register_artifact(session_id, "late.md")
    with pytest.raises(RegistryError):
        registry.complete_session(session_id, SessionStatus.COMPLETED)


def test_malformed_registry_raises(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    registry.path.parent.mkdir(parents=True)
    registry.path.write_text("{not json", encoding="utf-8")
    with pytest.raises(RegistryError):
        registry.init_session("align")


def test_registry_path_from_config(tmp_path) -> None:
    registry = ArtifactRegistry.from_config({"paths": {"registry": "state/registry.json"}}, tmp_path)
    assert registry.path == tmp_path.resolve() / "state" / "registry.json"


def test_cleanup_paths_destroys_owning_sessions(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    owner = registry.init_session("plan")
    bystander = registry.init_session("align")
    run_dir = tmp_path / ".ai" / "_scratch" / "feature-x"
    (run_dir / "logs").mkdir(parents=True)
    (run_dir / "logs" / "stage.log").write_text("ok\n", encoding="utf-8")
    registry.register_artifact(owner, run_dir, ArtifactKind.DIRECTORY, "plan", Classification.C)
    registry.register_artifact(owner, run_dir / "logs" / "stage.log", ArtifactKind.FILE, "plan", Classification.C)
    registry.register_artifact(bystander, "README.md", ArtifactKind.FILE, "align", Classification.B)

    preview = registry.cleanup_paths([run_dir], dry_run=True)
    assert preview.sessions == [owner]
    assert run_dir.exists()
    assert registry.get_session(owner).status == SessionStatus.ACTIVE

    report = registry.cleanup_paths([run_dir, tmp_path / ".ai" / "_scratch" / "gone.md"])

    assert [entry.outcome for entry in report.entries] == [CleanupOutcome.REMOVED, CleanupOutcome.MISSING]
    assert not run_dir.exists()
    assert registry.get_session(owner).status == SessionStatus.DESTROYED
    assert registry.get_session(bystander).status == SessionStatus.ACTIVE


def test_cleanup_paths_never_removes_the_registry(tmp_path) -> None:
    registry = ArtifactRegistry(tmp_path)
    registry.init_session("plan")

    report = registry.cleanup_paths([registry.path])

    assert report.errors
    assert registry.path.exists()
