from __future__ import annotations

import json
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

GOLDEN_REL = Path(".governance/ai/core/templates/golden-image")


@dataclass(slots=True)
class GovernedRepo:
    """Synthetic repository with a governance golden image checked in."""

    root: Path
    golden: Path

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def write_golden(self, relative: str, content: str) -> Path:
        path = self.golden / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def registry_document(self) -> dict:
        path = self.root / ".ai" / "_scratch" / ".artifact-registry.json"
        return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture()
def governed_repo(tmp_path: Path) -> GovernedRepo:
    """Repository where ``A.md`` matches the reference and ``B.md`` does not."""

    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    repo = GovernedRepo(root=repo_root, golden=repo_root / GOLDEN_REL)

    repo.write_golden("A.md", "# A\n\nShared guidance.\n")
    repo.write_golden("B.md", "# B\n\nReference wording.\n")
    repo.write_golden(".ai/rules/base.md", "# Base rule\n\nAlways review diffs.\n")
    repo.write_golden("docs/C.md", "# C\n\nNew governance doc.\n")
    repo.write_golden(
        ".ai/bundles/feature-planning-v1/prompts/04-validate-approach.md",
        "# Validate approach (bundle)\n\nWrite `Verdict: PROCEED|WARN|BLOCK` on the first line.\n",
    )

    automation = repo_root / ".governance" / "ai" / "core" / "automation"
    automation.mkdir(parents=True)
    (automation / "align-repo.sh").write_text("#!/usr/bin/env bash\n", encoding="utf-8")

    repo.write("A.md", "# A\n\nShared guidance.\n")
    repo.write("B.md", "# B\n\nLocal wording.\n")
    repo.write(
        "Makefile",
        textwrap.dedent(
            """
            test:
            \tpytest
            """
        ).lstrip(),
    )
    return repo
