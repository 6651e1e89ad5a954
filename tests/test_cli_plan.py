from __future__ import annotations

from typer.testing import CliRunner

from aigov.cli import app


def test_plan_offline_executes_all_tasks(tmp_path) -> None:
    result = CliRunner().invoke(
        app,
        [
            "plan",
            "--request",
            "Add a health check endpoint",
            "--execute",
            "all",
            "--offline",
            "--non-interactive",
            "--repo",
            str(tmp_path),
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Execution order: 01, 02, 03" in result.output
    assert "Session:" in result.output
    run_dirs = list((tmp_path / ".ai" / "_scratch").glob("feature-add-a-health-check-endpoint-*"))
    assert len(run_dirs) == 1
    assert (run_dirs[0] / "FEATURE.md").exists()
    assert not (run_dirs[0] / "DEFERRED_WORK.md").exists()


def test_plan_offline_scope_p0_writes_deferred_work(tmp_path) -> None:
    result = CliRunner().invoke(
        app,
        ["plan", "--request", "Add auditing", "--execute", "p0", "--offline", "--non-interactive", "--repo", str(tmp_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Execution order: 01" in result.output
    assert "Deferred work written to" in result.output


def test_plan_unknown_task_id_is_partial_failure(tmp_path) -> None:
    result = CliRunner().invoke(
        app,
        ["plan", "--request", "Add auditing", "--execute", "99", "--offline", "--non-interactive", "--repo", str(tmp_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 3
    assert "Unknown task id" in result.output


def test_plan_dry_run_renders_prompts(tmp_path) -> None:
    request_file = tmp_path / "request.md"
    request_file.write_text("Add rate limiting\n", encoding="utf-8")

    result = CliRunner().invoke(
        app,
        ["plan", "--request-file", str(request_file), "--dry-run", "--non-interactive", "--repo", str(tmp_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "understand_request: rendered" in result.output
    prompts = list((tmp_path / ".ai" / "_scratch").glob("feature-*/prompts/*.md"))
    assert prompts


def test_plan_research_offline(tmp_path) -> None:
    result = CliRunner().invoke(
        app,
        ["plan", "--research", "Compare sqlite vs postgres for the cache", "--offline", "--non-interactive", "--repo", str(tmp_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Question type: comparison" in result.output
    assert "Findings:" in result.output


def test_plan_requires_exactly_one_input(tmp_path) -> None:
    result = CliRunner().invoke(app, ["plan", "--repo", str(tmp_path)], catch_exceptions=False)
    assert result.exit_code == 1
    assert "exactly one" in result.output


def test_plan_unexpected_error_prints_the_session(tmp_path, monkeypatch) -> None:
    def explode(*args, **kwargs):
        raise RuntimeError("priority rules corrupted")

    monkeypatch.setattr("aigov.planning.pipeline.prioritize", explode)

    result = CliRunner().invoke(
        app,
        ["plan", "--request", "Add auditing", "--offline", "--non-interactive", "--repo", str(tmp_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "Planning failed unexpectedly: priority rules corrupted" in result.output
    assert "Session:" in result.output
    assert "aigov cleanup --session" in result.output
