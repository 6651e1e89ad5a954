from __future__ import annotations

from typer.testing import CliRunner

from aigov.cli import app
from aigov.registry import ArtifactRegistry, SessionStatus


def _invoke(*args: str, answers: str | None = None):
    return CliRunner().invoke(app, list(args), input=answers, catch_exceptions=False)


def _scratch(repo):
    return repo.root / ".ai" / "_scratch"


def _plan_and_preview(repo) -> None:
    root = str(repo.root)
    planned = _invoke("plan", "--request", "Add auditing", "--execute", "all", "--offline", "--non-interactive", "--repo", root)
    assert planned.exit_code == 0, planned.output
    previewed = _invoke("align", "--dry-run", "--non-interactive", "--skip-reference-update", "--repo", root)
    assert previewed.exit_code == 0, previewed.output


def test_features_category_removes_runs_and_destroys_their_session(governed_repo) -> None:
    _plan_and_preview(governed_repo)
    registry = ArtifactRegistry(governed_repo.root)
    plan_session = next(record.id for record in registry.list_sessions() if record.script == "plan")

    result = _invoke("cleanup", "--features", "--repo", str(governed_repo.root))

    assert result.exit_code == 0, result.output
    assert not list(_scratch(governed_repo).glob("feature-*"))
    assert list(_scratch(governed_repo).glob("ALIGNMENT_PLAN-*.md"))
    assert f"Session {plan_session} destroyed." in result.output
    assert registry.get_session(plan_session).status == SessionStatus.DESTROYED


def test_all_dry_run_changes_nothing(governed_repo) -> None:
    _plan_and_preview(governed_repo)
    before = sorted(path.name for path in _scratch(governed_repo).iterdir())

    result = _invoke("cleanup", "--all", "--dry-run", "--repo", str(governed_repo.root))

    assert result.exit_code == 0, result.output
    assert "would remove:" in result.output
    assert sorted(path.name for path in _scratch(governed_repo).iterdir()) == before


def test_all_keeps_the_registry(governed_repo) -> None:
    _plan_and_preview(governed_repo)

    result = _invoke("cleanup", "--all", "--repo", str(governed_repo.root))

    assert result.exit_code == 0, result.output
    remaining = [path.name for path in _scratch(governed_repo).iterdir()]
    assert remaining == [".artifact-registry.json"]
    assert all(record.status == SessionStatus.DESTROYED for record in ArtifactRegistry(governed_repo.root).list_sessions())


def test_align_destroy_removes_alignment_plans(governed_repo) -> None:
    _plan_and_preview(governed_repo)

    result = _invoke("align", "--destroy", "--repo", str(governed_repo.root))

    assert result.exit_code == 0, result.output
    assert not list(_scratch(governed_repo).glob("ALIGNMENT_PLAN-*.md"))
    assert list(_scratch(governed_repo).glob("feature-*"))


def test_menu_selects_a_category(governed_repo) -> None:
    _plan_and_preview(governed_repo)

    result = _invoke("cleanup", "--repo", str(governed_repo.root), answers="1\n")

    assert result.exit_code == 0, result.output
    assert "Clean which?" in result.output
    assert not list(_scratch(governed_repo).glob("ALIGNMENT_PLAN-*.md"))


def test_session_and_category_are_exclusive(tmp_path) -> None:
    result = _invoke("cleanup", "--session", "20240101-000000", "--features", "--repo", str(tmp_path))
    assert result.exit_code == 1


def test_empty_category_reports_nothing_found(tmp_path) -> None:
    result = _invoke("cleanup", "--research", "--repo", str(tmp_path))
    assert result.exit_code == 0
    assert "No research artifacts found." in result.output
