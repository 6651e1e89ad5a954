"""Minimal git helpers.

Just enough plumbing to refresh the governance submodule that carries the
reference template and to pin it to a version.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import List, Sequence


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


class GitRepository:
    """The repository whose governance submodule is refreshed."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Walk up from ``start`` to the nearest directory holding ``.git``."""
        origin = Path(start or Path.cwd()).resolve()
        for candidate in (origin, *origin.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {origin}")

    def _git(self, args: Sequence[str], *, cwd: Path | None = None, check: bool = True) -> subprocess.CompletedProcess[str]:
        if shutil.which("git") is None:
            raise GitError("git executable not available")
        result = subprocess.run(
            ["git", *args],
            cwd=cwd or self.root,
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
        if check and result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip() or f"exit status {result.returncode}"
            raise GitError(f"git {' '.join(args)} failed: {detail}")
        return result

    def submodule_paths(self) -> List[Path]:
        """Paths declared in ``.gitmodules``; empty when there is none."""
        if not (self.root / ".gitmodules").is_file():
            return []
        result = self._git(
            ["config", "--file", ".gitmodules", "--get-regexp", r"submodule\..*\.path"],
            check=False,
        )
        if result.returncode != 0:
            return []
        declared: List[Path] = []
        for line in result.stdout.splitlines():
            _, _, value = line.partition(" ")
            if value.strip():
                declared.append(Path(value.strip()))
        return declared

    def update_submodule(self, path: Path | str) -> None:
        """Initialise the submodule at ``path`` and move it to its remote head."""
        self._git(["submodule", "update", "--init", "--remote", "--", Path(path).as_posix()])

    def checkout(self, version: str, *, path: Path | str | None = None) -> None:
        """Pin the repository, or the submodule at ``path``, to ``version``."""
        target = self.root if path is None else (self.root / path).resolve()
        self._git(["fetch", "--tags", "--quiet"], cwd=target, check=False)
        self._git(["checkout", "--quiet", version], cwd=target)


__all__ = ["GitError", "GitRepository"]
