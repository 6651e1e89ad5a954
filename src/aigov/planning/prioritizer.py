"""Assign P0-P3 priorities and defer impacts to a validated task plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .schemas import PlanTask, Priority, TaskCategory, TaskPlan

LOGGER = logging.getLogger(__name__)

CATEGORY_PRIORITIES: Dict[TaskCategory, Priority] = {
    TaskCategory.SETUP: Priority.P0,
    TaskCategory.IMPLEMENT: Priority.P1,
    TaskCategory.INTEGRATE: Priority.P1,
    TaskCategory.CONFIGURE: Priority.P1,
    TaskCategory.VALIDATE: Priority.P2,
    TaskCategory.DOCUMENT: Priority.P3,
    TaskCategory.CLEANUP: Priority.P3,
}

CRITICAL_KEYWORDS = ("security", "auth", "secret", "credential", "critical", "blocking", "migration")

DEFER_IMPACTS: Dict[Priority, str] = {
    Priority.P0: "Feature is non-functional if skipped.",
    Priority.P1: "Core functionality is incomplete if skipped.",
    Priority.P2: "Enhancement is missing; the feature still works.",
    Priority.P3: "Polish only; no functional impact.",
}


@dataclass(slots=True)
class PriorityRules:
    """Caller-supplied overrides read from ``planning.priority_rules``."""

    categories: Dict[TaskCategory, Priority] = field(default_factory=dict)
    keywords: Dict[Priority, List[str]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "PriorityRules":
        rules = cls()
        if not isinstance(raw, Mapping):
            return rules
        for category, priority in (raw.get("categories") or {}).items():
            try:
                rules.categories[TaskCategory(str(category).upper())] = Priority(str(priority).upper())
            except ValueError:
                LOGGER.warning("Ignoring priority rule %s=%s", category, priority)
        for priority, words in (raw.get("keywords") or {}).items():
            try:
                key = Priority(str(priority).upper())
            except ValueError:
                LOGGER.warning("Ignoring keyword rule for unknown priority %s", priority)
                continue
            rules.keywords[key] = [str(word).lower() for word in words or []]
        return rules


def _text(task: PlanTask) -> str:
    return f"{task.name} {task.description}".lower()


def heuristic_priority(task: PlanTask, rules: Optional[PriorityRules] = None) -> Priority:
    """Default priority for a task nobody assigned one to."""
    rules = rules or PriorityRules()
    text = _text(task)
    for priority in sorted(rules.keywords, key=lambda item: item.rank):
        if any(word in text for word in rules.keywords[priority]):
            return priority
    if task.category in rules.categories:
        return rules.categories[task.category]
    if any(keyword in text for keyword in CRITICAL_KEYWORDS):
        return Priority.P0
    return CATEGORY_PRIORITIES.get(task.category, Priority.P1)


def _dependants(tasks: Sequence[PlanTask]) -> Dict[str, List[str]]:
    result: Dict[str, List[str]] = {task.id: [] for task in tasks}
    for task in tasks:
        for dependency in task.depends_on:
            result.setdefault(dependency, []).append(task.id)
    return result


def defer_impact_for(task: PlanTask, dependants: Sequence[str]) -> str:
    impact = DEFER_IMPACTS[task.priority or Priority.P1]
    if dependants:
        impact += " Blocks " + ", ".join(sorted(dependants)) + "."
    return impact


def prioritize(plan: TaskPlan, rules: Optional[PriorityRules] = None) -> TaskPlan:
    """Fill in priority, defer_safe and defer_impact on every task in place.

    Supplied priorities are kept. Heuristic priorities of prerequisites are
    raised to the most urgent of their dependants.
    """
    tasks = plan.tasks
    index = plan.by_id()
    assigned = {task.id for task in tasks if task.priority is not None}
    for task in tasks:
        if task.priority is None:
            task.priority = heuristic_priority(task, rules)

    # Walk dependants before prerequisites so raises propagate down chains.
    for task_id in reversed(plan.execution_order):
        task = index[task_id]
        for dependency in task.depends_on:
            prerequisite = index.get(dependency)
            if prerequisite is None or prerequisite.id in assigned:
                continue
            if task.priority.rank < prerequisite.priority.rank:
                prerequisite.priority = task.priority

    dependants = _dependants(tasks)
    for task in tasks:
        if task.defer_safe is None:
            task.defer_safe = task.priority != Priority.P0
        if not task.defer_impact.strip():
            task.defer_impact = defer_impact_for(task, dependants.get(task.id, []))
    return plan


def render_priorities(plan: TaskPlan) -> str:
    lines = [
        "# Priorities",
        "",
        "| Order | Task | Name | Category | Priority | Defer safe | Defer impact |",
        "|-------|------|------|----------|----------|------------|--------------|",
    ]
    for position, task in enumerate(plan.ordered(), start=1):
        priority = task.priority.value if task.priority else "-"
        defer_safe = "yes" if task.defer_safe else "no"
        lines.append(
            f"| {position} | {task.id} | {task.name} | {task.category.value} | {priority} | {defer_safe} | {task.defer_impact} |"
        )
    if plan.warnings:
        lines.extend(["", "## Warnings", ""])
        lines.extend(f"- {warning}" for warning in plan.warnings)
    lines.append("")
    return "\n".join(lines)


__all__ = [
    "CATEGORY_PRIORITIES",
    "DEFER_IMPACTS",
    "PriorityRules",
    "defer_impact_for",
    "heuristic_priority",
    "prioritize",
    "render_priorities",
]
