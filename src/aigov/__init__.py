"""Session-scoped governance automation: repository alignment and feature planning."""

__version__ = "0.1.0"

__all__ = ["__version__"]
