"""Detect well-known tooling configured in a repository."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List

__all__ = ["DetectedTool", "ToolSignature", "TOOL_SIGNATURES", "discover_tooling"]

_SKIP_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__", ".terraform"}


@dataclass(frozen=True, slots=True)
class ToolSignature:
    """Marker that identifies a tool: a root path or a filename found nearby."""

    name: str
    marker: str
    docs: str
    search_depth: int = 0

    @property
    def is_pattern(self) -> bool:
        return self.search_depth > 0


@dataclass(slots=True)
class DetectedTool:
    name: str
    config: str
    docs: str


TOOL_SIGNATURES: tuple[ToolSignature, ...] = (
    ToolSignature("EditorConfig", ".editorconfig", "https://editorconfig.org/"),
    ToolSignature("direnv", ".envrc", "https://direnv.net/"),
    ToolSignature("asdf", ".tool-versions", "https://asdf-vm.com/"),
    ToolSignature("OpenTofu/Terraform", "*.tf", "https://opentofu.org/docs/", search_depth=3),
    ToolSignature("Helm", "Chart.yaml", "https://helm.sh/docs/", search_depth=4),
    ToolSignature("Kustomize", "kustomization.yaml", "https://kustomize.io/", search_depth=4),
    ToolSignature("GitHub Actions", ".github/workflows", "https://docs.github.com/en/actions"),
    ToolSignature("Make", "Makefile", "https://www.gnu.org/software/make/manual/"),
    ToolSignature("Claude Code", "CLAUDE.md", "https://docs.anthropic.com/"),
    ToolSignature("VSCode", ".vscode", "https://code.visualstudio.com/docs"),
    ToolSignature("Ansible", "ansible.cfg", "https://docs.ansible.com/", search_depth=3),
    ToolSignature("Biome", "biome.json", "https://biomejs.dev/"),
    ToolSignature("Node.js", "package.json", "https://nodejs.org/docs/"),
    ToolSignature("Python/pyproject", "pyproject.toml", "https://packaging.python.org/"),
    ToolSignature("Python/pip", "requirements.txt", "https://pip.pypa.io/"),
    ToolSignature("Go", "go.mod", "https://go.dev/doc/"),
    ToolSignature("Rust", "Cargo.toml", "https://doc.rust-lang.org/cargo/"),
)


def _walk_files(root: Path, max_depth: int) -> Iterator[Path]:
    root_depth = len(root.parts)
    for current, dirnames, filenames in os.walk(root):
        current_path = Path(current)
        depth = len(current_path.parts) - root_depth
        dirnames[:] = sorted(name for name in dirnames if name not in _SKIP_DIRS)
        if depth >= max_depth:
            dirnames[:] = []
        for filename in sorted(filenames):
            yield current_path / filename


def _matches(root: Path, signature: ToolSignature) -> bool:
    if not signature.is_pattern:
        return (root / signature.marker).exists()
    for candidate in _walk_files(root, signature.search_depth):
        if candidate.match(signature.marker):
            return True
    return False


def discover_tooling(repo_root: Path | str) -> List[DetectedTool]:
    """Return the tools whose markers exist in ``repo_root``, in table order."""
    root = Path(repo_root)
    found: List[DetectedTool] = []
    for signature in TOOL_SIGNATURES:
        if _matches(root, signature):
            config = signature.marker + ("/" if (root / signature.marker).is_dir() else "")
            found.append(DetectedTool(name=signature.name, config=config, docs=signature.docs))
    return found
