"""Configuration defaults and YAML loading for the automation commands."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_CONFIG_NAME = ".ai/automation.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "paths": {
        "scratch": ".ai/_scratch",
        "registry": ".ai/_scratch/.artifact-registry.json",
    },
    "reference": {
        "search_paths": [
            ".governance/ai",
            "governance/ai",
            ".governance",
            "node_modules/@dtlr/governance/ai",
        ],
        "golden_image": "core/templates/golden-image",
        "submodule": ".governance",
        "version": "",
        "update": True,
    },
    "alignment": {
        # Empty lists mean "derive from the golden image".
        "managed_files": [],
        "create_missing": [],
        "local_rules_dir": ".ai/rules/local",
        "reference_rules_dir": ".ai/rules",
        "docs_path": ".ai/AUTOMATION.md",
        "gitignore_patterns": [".ai/_scratch/", "*.backup-*"],
    },
    "agent": {
        "command": "claude",
        "capabilities": ["Edit", "Write", "Bash"],
        "research_capabilities": ["Read", "Grep", "Glob", "Write"],
        "extra_args": [],
    },
    "issues": {
        "command": "gh",
        "labels": ["ai-deferred", "backlog"],
        "alignment_labels": ["ai-deferred", "infrastructure", "backlog"],
    },
    "planning": {
        "bundle": ".ai/bundles/feature-planning-v1",
        "max_tasks": 15,
        "max_task_lines": 50,
        "max_files_per_task": 2,
        "priority_rules": {},
    },
}


class ConfigError(ValueError):
    """Raised when a configuration file cannot be parsed."""


def default_config() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def merge_config(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into ``base`` (mappings merge, everything else replaces)."""
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merge_config(current, value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def load_config(config_path: Path | str | None, *, repo_root: Path | None = None) -> Dict[str, Any]:
    """Load YAML configuration layered over the defaults.

    A missing file is not an error: the defaults apply. Relative paths are
    resolved against ``repo_root`` when supplied.
    """
    config = default_config()
    if config_path is None:
        return config

    path = Path(config_path)
    if not path.is_absolute() and repo_root is not None:
        path = repo_root / path
    if not path.exists():
        return config

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {path} must be a mapping at the top level.")

    return merge_config(config, data)


def section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Return a configuration section, tolerating missing or malformed entries."""
    value = config.get(name)
    if isinstance(value, Mapping):
        return value
    return {}


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "default_config",
    "load_config",
    "merge_config",
    "section",
]
