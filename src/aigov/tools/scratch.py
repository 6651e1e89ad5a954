"""Scratch directory categories used by bulk cleanup."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Tuple

SCRATCH_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "alignment": ("ALIGNMENT_PLAN-*.md", "DEFERRED_ALIGNMENT.md", "contributions-*"),
    "features": ("feature-*", "DEFERRED_WORK.md"),
    "research": ("research-*",),
    "prompts": ("prompts", "feature-*/prompts", "research-*/prompts"),
}

# ``all`` also sweeps loose markdown such as run summaries, but keeps README.md.
_ALL_EXTRA = ("*.md",)
_KEEP = {"README.md"}


def scratch_targets(scratch_dir: Path, categories: Iterable[str]) -> List[Path]:
    """Return existing scratch paths matched by ``categories``, outermost first.

    Paths nested inside another matched path are dropped since removing the
    parent covers them.
    """
    patterns: List[str] = []
    for category in categories:
        if category == "all":
            for values in SCRATCH_CATEGORIES.values():
                patterns.extend(values)
            patterns.extend(_ALL_EXTRA)
            continue
        if category not in SCRATCH_CATEGORIES:
            raise ValueError(f"Unknown scratch category: {category}")
        patterns.extend(SCRATCH_CATEGORIES[category])

    if not scratch_dir.is_dir():
        return []
    matches = {
        path
        for pattern in patterns
        for path in scratch_dir.glob(pattern)
        if path.name not in _KEEP and not path.name.startswith(".")
    }
    selected: List[Path] = []
    for path in sorted(matches, key=lambda item: (len(item.parts), item.as_posix())):
        if any(parent in selected for parent in path.parents):
            continue
        selected.append(path)
    return sorted(selected)


__all__ = ["SCRATCH_CATEGORIES", "scratch_targets"]
