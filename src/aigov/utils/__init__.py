"""Small shared helpers."""

from .files import atomic_write_text, relative_to_root
from .slug import slugify

__all__ = ["atomic_write_text", "relative_to_root", "slugify"]
