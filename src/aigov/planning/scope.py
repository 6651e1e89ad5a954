"""Scope selection: which prioritized tasks run now and which are deferred."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .schemas import PlanTask, Priority, TaskPlan

SCOPE_KEYWORDS = ("all", "p0-p1", "p0", "none")


class ScopeError(ValueError):
    """Raised for an unknown scope keyword or task id."""


@dataclass(slots=True)
class ScopeSelection:
    scope: str
    execution_order: List[str] = field(default_factory=list)
    deferred: List[PlanTask] = field(default_factory=list)


def _initial_ids(plan: TaskPlan, scope: str) -> set[str]:
    normalised = scope.strip().lower()
    if normalised == "all":
        return {task.id for task in plan.tasks}
    if normalised == "none":
        return set()
    if normalised == "p0":
        return {task.id for task in plan.tasks if task.priority == Priority.P0}
    if normalised == "p0-p1":
        return {task.id for task in plan.tasks if task.priority in (Priority.P0, Priority.P1)}

    requested = [item.strip() for item in scope.split(",") if item.strip()]
    if not requested:
        raise ScopeError(f"Unknown scope {scope!r}; use one of {', '.join(SCOPE_KEYWORDS)} or task ids")
    known = {task.id for task in plan.tasks}
    unknown = [item for item in requested if item not in known]
    if unknown:
        raise ScopeError(f"Unknown task id(s) in scope: {', '.join(unknown)}")
    return set(requested)


def select_scope(plan: TaskPlan, scope: str) -> ScopeSelection:
    """Resolve ``scope`` against ``plan``; selected tasks pull in their prerequisites."""
    index = plan.by_id()
    selected = _initial_ids(plan, scope)
    stack = list(selected)
    while stack:
        task = index[stack.pop()]
        for dependency in task.depends_on:
            if dependency not in selected:
                selected.add(dependency)
                stack.append(dependency)

    return ScopeSelection(
        scope=scope,
        execution_order=[task_id for task_id in plan.execution_order if task_id in selected],
        deferred=[task for task in plan.ordered() if task.id not in selected],
    )


__all__ = ["SCOPE_KEYWORDS", "ScopeError", "ScopeSelection", "select_scope"]
