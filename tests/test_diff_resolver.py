from __future__ import annotations

from pathlib import Path

import pytest

from aigov.registry import ArtifactKind, ArtifactRegistry, Classification
from aigov.tools.diff_resolver import (
    ConflictAction,
    ConflictDecision,
    DiffResolver,
    MissingSideError,
    backup_path_for,
    compare,
)


def _files(tmp_path: Path, local_text: str, reference_text: str) -> tuple[Path, Path]:
    local = tmp_path / "B.md"
    reference = tmp_path / "reference" / "B.md"
    reference.parent.mkdir()
    local.write_text(local_text, encoding="utf-8")
    reference.write_text(reference_text, encoding="utf-8")
    return local, reference


def _resolver(tmp_path: Path, **kwargs) -> tuple[ArtifactRegistry, DiffResolver]:
    registry = ArtifactRegistry(tmp_path)
    session_id = registry.init_session("align")
    resolver = DiffResolver(
        registry,
        session_id,
        contributions_root=tmp_path / ".ai" / "_scratch" / f"contributions-{session_id}",
        **kwargs,
    )
    return registry, resolver


def test_compare_reports_identity_and_diff(tmp_path) -> None:
    local, reference = _files(tmp_path, "one\ntwo\n", "one\nthree\n")

    comparison = compare(local, reference)

    assert not comparison.identical
    assert "-two" in comparison.diff_text
    assert "+three" in comparison.diff_text
    assert comparison.local_line_count == 2

    reference.write_text("one\ntwo\n", encoding="utf-8")
    assert compare(local, reference).identical


def test_compare_names_the_missing_side(tmp_path) -> None:
    local, reference = _files(tmp_path, "x\n", "x\n")
    local.unlink()
    with pytest.raises(MissingSideError) as excinfo:
        compare(local, reference)
    assert excinfo.value.side == "local"


def test_non_interactive_decision_replaces_without_contribution(tmp_path) -> None:
    local, reference = _files(tmp_path, "local\n", "reference\n")
    _, resolver = _resolver(tmp_path, chooser=lambda comparison: pytest.fail("chooser must not be called"))

    decision = resolver.decide(compare(local, reference), interactive=False)

    assert decision.action == ConflictAction.REPLACE
    assert not decision.wants_contribution


def test_replace_writes_backup_and_registers_only_the_replaced_file(tmp_path) -> None:
    local, reference = _files(tmp_path, "local\n", "reference\n")
    registry, resolver = _resolver(tmp_path)

    decision = resolver.decide(compare(local, reference), interactive=False)
    outcome = resolver.resolve(decision, classification=Classification.B, produced_by="resolve_conflicts")

    assert outcome.replaced
    assert local.read_text(encoding="utf-8") == "reference\n"
    assert outcome.backup_path == tmp_path / f"B.md.backup-{resolver.session_id}"
    assert outcome.backup_path.read_text(encoding="utf-8") == "local\n"
    paths = [artifact.path for artifact in registry.list_artifacts(resolver.session_id)]
    assert paths == ["B.md"]


def test_contribution_directory_is_registered_before_its_files(tmp_path) -> None:
    local, reference = _files(tmp_path, "local\n", "reference\n")
    registry, resolver = _resolver(tmp_path)
    decision = ConflictDecision(local_path=local, reference_path=reference, action=ConflictAction.KEEP_LOCAL, contribute=True)

    outcome = resolver.resolve(decision)

    assert not outcome.replaced
    assert local.read_text(encoding="utf-8") == "local\n"
    assert outcome.contribution_path.read_text(encoding="utf-8") == "local\n"
    artifacts = registry.list_artifacts(resolver.session_id)
    assert [artifact.kind for artifact in artifacts] == [ArtifactKind.DIRECTORY, ArtifactKind.FILE]
    assert artifacts[1].path.endswith("/B.md")


def test_dry_run_reports_without_writing(tmp_path) -> None:
    local, reference = _files(tmp_path, "local\n", "reference\n")
    registry, resolver = _resolver(tmp_path, dry_run=True)
    decision = ConflictDecision(local_path=local, reference_path=reference, action=ConflictAction.REPLACE, contribute=True)

    outcome = resolver.resolve(decision)

    assert outcome.replaced and outcome.dry_run
    assert local.read_text(encoding="utf-8") == "local\n"
    assert not outcome.backup_path.exists()
    assert not resolver.contributions_root.exists()
    assert registry.list_artifacts(resolver.session_id) == []


def test_backup_path_avoids_existing_sidecars(tmp_path) -> None:
    local = tmp_path / "B.md"
    Path(f"{local}.backup-s1").write_text("old\n", encoding="utf-8")
    assert backup_path_for(local, "s1") == Path(f"{local}.backup-s1.1")
