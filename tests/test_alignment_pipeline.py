from __future__ import annotations

import os

from aigov.alignment import AlignmentOptions, AlignmentPipeline, defer_alignment
from aigov.config import default_config
from aigov.registry import ArtifactKind, ArtifactRegistry, SessionStatus
from aigov.tools.issues import IssueSink, IssueSinkUnavailable


def _run(repo, **option_overrides):
    options = AlignmentOptions(interactive=False, skip_reference_update=True, **option_overrides)
    return AlignmentPipeline(repo.root, config=default_config(), options=options).run()


def _snapshot(root):
    snapshot = {}
    for current, dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = os.path.join(current, filename)
            with open(path, "rb") as handle:
                snapshot[os.path.relpath(path, root)] = handle.read()
    return snapshot


def test_scenario_identical_and_differing_files(governed_repo) -> None:
    golden_files = sum(len(files) for _, _, files in os.walk(governed_repo.golden))

    report = _run(governed_repo)

    counts = report.counts()
    assert counts["skipped"] == 1
    assert counts["replaced"] == 1
    assert counts["created"] == golden_files - 2
    assert counts["failed"] == 0
    assert report.exit_code == 0

    assert governed_repo.read("B.md") == "# B\n\nReference wording.\n"
    backup = governed_repo.root / f"B.md.backup-{report.session_id}"
    assert backup.read_text(encoding="utf-8") == "# B\n\nLocal wording.\n"
    assert governed_repo.read("docs/C.md") == "# C\n\nNew governance doc.\n"

    registry = ArtifactRegistry(governed_repo.root)
    session = registry.get_session(report.session_id)
    assert session.status == SessionStatus.COMPLETED
    assert session.artifacts[0].path == f".ai/_scratch/run-{report.session_id}.md"


def test_every_change_is_registered(governed_repo) -> None:
    before = _snapshot(governed_repo.root)

    report = _run(governed_repo)

    after = _snapshot(governed_repo.root)
    changed = {path for path in after if before.get(path) != after[path]}
    registered = {artifact.path for artifact in ArtifactRegistry(governed_repo.root).list_artifacts(report.session_id)}
    registry_file = os.path.join(".ai", "_scratch", ".artifact-registry.json")
    backup = f"B.md.backup-{report.session_id}"

    for path in changed - {registry_file, backup}:
        relative = path.replace(os.sep, "/")
        assert relative in registered or any(
            artifact_dir in registered for artifact_dir in _parents(relative)
        ), relative


def _parents(relative):
    parts = relative.split("/")
    return ["/".join(parts[:index]) for index in range(1, len(parts))]


def test_second_run_is_idempotent(governed_repo) -> None:
    _run(governed_repo)

    second = _run(governed_repo)

    assert second.counts()["replaced"] == 0
    assert second.counts()["created"] == 0
    assert second.exit_code == 0


def test_missing_reference_is_fatal(tmp_path) -> None:
    repo_root = tmp_path / "bare"
    repo_root.mkdir()

    report = AlignmentPipeline(
        repo_root,
        config=default_config(),
        options=AlignmentOptions(interactive=False, skip_reference_update=True),
    ).run()

    assert report.exit_code == 1
    assert "Cannot find golden image" in (report.fatal or "")
    session = ArtifactRegistry(repo_root).get_session(report.session_id)
    assert session.status == SessionStatus.FAILED
    summary = (repo_root / ".ai" / "_scratch" / f"run-{report.session_id}.md").read_text(encoding="utf-8")
    assert "setup_reference: failed" in summary


def test_dry_run_only_writes_scratch(governed_repo) -> None:
    before = _snapshot(governed_repo.root)

    report = _run(governed_repo, dry_run=True)

    after = _snapshot(governed_repo.root)
    changed = {path.replace(os.sep, "/") for path in after if before.get(path) != after[path]}
    assert all(path.startswith(".ai/_scratch/") for path in changed), changed
    assert report.plan_path is not None
    plan = report.plan_path.read_text(encoding="utf-8")
    assert "## Files to Replace" in plan
    assert "`B.md`" in plan
    assert report.counts()["replaced"] == 1


def test_local_rules_migration(governed_repo) -> None:
    governed_repo.write(".ai/rules/local/base.md", "# Base rule\n\nAlways review diffs.\n")
    governed_repo.write(".ai/rules/local/team.md", "# Team only\n")

    report = _run(governed_repo)

    assert ".ai/rules/local/base.md" in report.removed
    assert ".ai/rules/local/team.md" in report.kept
    assert not (governed_repo.root / ".ai/rules/local/base.md").exists()
    assert (governed_repo.root / ".ai/rules/local/team.md").exists()


def test_interactive_rule_contribution(governed_repo) -> None:
    governed_repo.write(".ai/rules/local/team.md", "# Team only\n")
    options = AlignmentOptions(interactive=True, skip_reference_update=True)

    report = AlignmentPipeline(
        governed_repo.root,
        config=default_config(),
        options=options,
        rule_chooser=lambda path: "contribute",
    ).run()

    contribution = governed_repo.root / ".ai" / "_scratch" / f"contributions-{report.session_id}" / ".ai/rules/local/team.md"
    assert contribution.exists()
    artifacts = ArtifactRegistry(governed_repo.root).list_artifacts(report.session_id)
    kinds = [artifact.kind for artifact in artifacts if "contributions-" in artifact.path]
    assert kinds[0] == ArtifactKind.DIRECTORY


def test_generated_docs_list_entry_points_and_tooling(governed_repo) -> None:
    report = _run(governed_repo)

    docs = governed_repo.read(".ai/AUTOMATION.md")
    assert report.docs_path is not None
    assert "`align-repo.sh`" in docs
    assert "`aigov align`" in docs
    assert "`base.md`" in docs
    assert "| Make |" in docs


def test_cleanup_after_alignment_keeps_backup(governed_repo) -> None:
    report = _run(governed_repo)

    cleanup = ArtifactRegistry(governed_repo.root).cleanup_session(report.session_id)

    assert cleanup.ok
    assert not (governed_repo.root / "docs" / "C.md").exists()
    assert (governed_repo.root / f"B.md.backup-{report.session_id}").exists()


class _BrokenSink(IssueSink):
    def create_issue(self, title, body, labels=()):
        raise IssueSinkUnavailable("gh missing")


def test_defer_alignment_falls_back_to_local_file(governed_repo) -> None:
    plan_report = _run(governed_repo, dry_run=True)

    result = defer_alignment(governed_repo.root, config=default_config(), sink=_BrokenSink())

    assert result.issue_url is None
    assert result.plan_path == plan_report.plan_path
    deferred = result.fallback_path.read_text(encoding="utf-8")
    assert "# Deferred Alignment" in deferred
    assert plan_report.session_id in deferred


def test_rule_override_migration_is_idempotent(governed_repo) -> None:
    governed_repo.write(".ai/rules/local/base.md", "# Base rule\n\nReview diffs when convenient.\n")

    first = _run(governed_repo)

    assert ".ai/rules/local/base.md" in first.replaced
    assert ".ai/rules/local/base.md" in first.removed
    assert not (governed_repo.root / ".ai/rules/local/base.md").exists()
    backup = governed_repo.root / f".ai/rules/local/base.md.backup-{first.session_id}"
    assert backup.read_text(encoding="utf-8") == "# Base rule\n\nReview diffs when convenient.\n"

    second = _run(governed_repo)

    counts = second.counts()
    assert counts["replaced"] == 0
    assert counts["created"] == 0
    assert counts["removed"] == 0
    assert counts["kept"] == 0
    assert backup.exists()


def test_backup_sidecars_are_not_offered_as_rules(governed_repo) -> None:
    governed_repo.write(".ai/rules/local/base.md.backup-20240101-120000", "# old copy\n")
    offered = []

    AlignmentPipeline(
        governed_repo.root,
        config=default_config(),
        options=AlignmentOptions(interactive=True, skip_reference_update=True),
        rule_chooser=lambda path: offered.append(path) or "keep",
    ).run()

    assert offered == []


def test_gitignore_gains_scratch_and_backup_patterns_once(governed_repo) -> None:
    governed_repo.write(".gitignore", "node_modules/\n*.backup-*")

    first = _run(governed_repo)
    second = _run(governed_repo)

    lines = governed_repo.read(".gitignore").splitlines()
    assert lines == ["node_modules/", "*.backup-*", ".ai/_scratch/"]
    assert first.ignored == [".ai/_scratch/"]
    assert second.ignored == []
    registered = {artifact.path for artifact in ArtifactRegistry(governed_repo.root).list_artifacts(first.session_id)}
    assert ".gitignore" not in registered


def test_created_gitignore_is_registered(governed_repo) -> None:
    report = _run(governed_repo)

    assert governed_repo.read(".gitignore") == ".ai/_scratch/\n*.backup-*\n"
    registered = {artifact.path for artifact in ArtifactRegistry(governed_repo.root).list_artifacts(report.session_id)}
    assert ".gitignore" in registered


def test_dry_run_only_plans_gitignore_changes(governed_repo) -> None:
    report = _run(governed_repo, dry_run=True)

    assert not (governed_repo.root / ".gitignore").exists()
    assert "## .gitignore Additions" in report.plan_path.read_text(encoding="utf-8")
