"""Slug helper for naming per-run scratch directories."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_SLUG_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9]+")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 40) -> str:
    """Normalize ``value`` into a lowercase, hyphenated, length-limited slug.

    Over-long slugs keep a short hash suffix so distinct inputs stay distinct.
    """
    source = (value or "").strip().lower()
    slug = _SLUG_PATTERN.sub("-", source).strip("-")
    if not slug:
        slug = _SLUG_PATTERN.sub("-", fallback.lower()).strip("-") or "item"
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:6]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"
