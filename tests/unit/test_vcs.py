from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from aigov.tools.vcs import GitError, GitRepository


def test_non_repository_is_rejected(tmp_path) -> None:
    with pytest.raises(GitError):
        GitRepository(tmp_path)


def test_discover_walks_up_to_the_repository_root(tmp_path) -> None:
    (tmp_path / ".git").mkdir()
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert GitRepository.discover(nested).root == tmp_path.resolve()


def test_no_gitmodules_means_no_submodules(tmp_path) -> None:
    (tmp_path / ".git").mkdir()
    assert GitRepository(tmp_path).submodule_paths() == []


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_submodule_paths_are_read_from_gitmodules(tmp_path) -> None:
    (tmp_path / ".git").mkdir()
    (tmp_path / ".gitmodules").write_text(
        '[submodule "governance"]\n\tpath = .governance\n\turl = https://example.invalid/governance.git\n',
        encoding="utf-8",
    )

    assert GitRepository(tmp_path).submodule_paths() == [Path(".governance")]
