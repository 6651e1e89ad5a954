from __future__ import annotations

import pytest

from aigov.tools.scratch import scratch_targets


def _populate(scratch) -> None:
    (scratch / "feature-audit-20240101-000000" / "prompts").mkdir(parents=True)
    (scratch / "research-cache-20240101-000001" / "prompts").mkdir(parents=True)
    (scratch / "prompts").mkdir()
    for name in ("ALIGNMENT_PLAN-20240101-000002.md", "run-20240101-000000.md", "README.md", ".artifact-registry.json"):
        (scratch / name).write_text("x\n", encoding="utf-8")


def test_categories_select_their_own_paths(tmp_path) -> None:
    _populate(tmp_path)

    assert [path.name for path in scratch_targets(tmp_path, ["alignment"])] == ["ALIGNMENT_PLAN-20240101-000002.md"]
    assert [path.name for path in scratch_targets(tmp_path, ["research"])] == ["research-cache-20240101-000001"]
    prompts = scratch_targets(tmp_path, ["prompts"])
    assert [path.relative_to(tmp_path).as_posix() for path in prompts] == [
        "feature-audit-20240101-000000/prompts",
        "prompts",
        "research-cache-20240101-000001/prompts",
    ]


def test_nested_matches_collapse_into_their_parent(tmp_path) -> None:
    _populate(tmp_path)

    selected = scratch_targets(tmp_path, ["features", "prompts"])

    assert [path.relative_to(tmp_path).as_posix() for path in selected] == [
        "feature-audit-20240101-000000",
        "prompts",
        "research-cache-20240101-000001/prompts",
    ]


def test_all_keeps_readme_and_registry(tmp_path) -> None:
    _populate(tmp_path)

    names = {path.name for path in scratch_targets(tmp_path, ["all"])}

    assert "README.md" not in names
    assert ".artifact-registry.json" not in names
    assert "run-20240101-000000.md" in names


def test_missing_scratch_directory_and_unknown_category(tmp_path) -> None:
    assert scratch_targets(tmp_path / "absent", ["features"]) == []
    with pytest.raises(ValueError):
        scratch_targets(tmp_path, ["logs"])
