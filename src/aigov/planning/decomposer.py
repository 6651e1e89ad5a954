"""Parse and validate the task graph written by the decomposition stage."""

from __future__ import annotations

import heapq
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from pydantic import ValidationError

from .schemas import PlanTask, TaskPlan

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TASKS = 15
DEFAULT_MAX_TASK_LINES = 50
DEFAULT_MAX_FILES_PER_TASK = 2


class TaskGraphError(ValueError):
    """Raised when ``tasks.json`` is malformed or describes an invalid graph."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid task graph: " + "; ".join(self.problems))


def _find_dependency_cycles(graph: Mapping[str, Sequence[str]]) -> list[list[str]]:
    cycles: list[list[str]] = []
    state: dict[str, str] = {}
    path: list[str] = []

    def visit(node: str) -> None:
        marker = state.get(node)
        if marker == "permanent":
            return
        if marker == "temporary":
            start_index = path.index(node) if node in path else 0
            cycle = path[start_index:] + [node]
            if cycle not in cycles:
                cycles.append(cycle)
            return
        state[node] = "temporary"
        path.append(node)
        for dependency in graph.get(node, ()):
            if dependency in graph:
                visit(dependency)
        path.pop()
        state[node] = "permanent"

    for node in sorted(graph):
        visit(node)
    return cycles


def execution_order(tasks: Sequence[PlanTask]) -> List[str]:
    """Topological order of ``tasks``; ready tasks run in ascending id order."""
    remaining: Dict[str, set[str]] = {task.id: set(task.depends_on) for task in tasks}
    dependants: Dict[str, List[str]] = {task.id: [] for task in tasks}
    for task in tasks:
        for dependency in task.depends_on:
            dependants.setdefault(dependency, []).append(task.id)

    ready = [task_id for task_id, deps in remaining.items() if not deps]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        task_id = heapq.heappop(ready)
        order.append(task_id)
        for dependant in dependants.get(task_id, ()):
            pending = remaining[dependant]
            pending.discard(task_id)
            if not pending:
                heapq.heappush(ready, dependant)
    if len(order) != len(remaining):
        raise TaskGraphError(["dependency cycle prevents ordering"])
    return order


def parse_tasks(payload: Any) -> List[PlanTask]:
    """Build :class:`PlanTask` records from decoded ``tasks.json`` content."""
    if isinstance(payload, Mapping):
        entries = payload.get("tasks")
    else:
        entries = payload
    if not isinstance(entries, list):
        raise TaskGraphError(['expected an object with a "tasks" list'])

    tasks: List[PlanTask] = []
    problems: List[str] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            problems.append(f"task #{index + 1} is not an object")
            continue
        try:
            tasks.append(PlanTask.model_validate(dict(entry)))
        except ValidationError as error:
            label = entry.get("id") or f"#{index + 1}"
            details = ", ".join(
                f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()
            )
            problems.append(f"task {label}: {details}")
    if problems:
        raise TaskGraphError(problems)
    return tasks


def validate_tasks(
    tasks: Sequence[PlanTask],
    *,
    max_tasks: int = DEFAULT_MAX_TASKS,
    max_task_lines: int = DEFAULT_MAX_TASK_LINES,
    max_files_per_task: int = DEFAULT_MAX_FILES_PER_TASK,
) -> TaskPlan:
    """Check graph rules and return the plan with warnings and execution order."""
    problems: List[str] = []
    warnings: List[str] = []

    seen: set[str] = set()
    for task in tasks:
        if task.id in seen:
            problems.append(f"duplicate task id {task.id}")
        seen.add(task.id)

    for task in tasks:
        if len(task.files) > max_files_per_task:
            problems.append(f"task {task.id} touches {len(task.files)} files (limit {max_files_per_task})")
        for dependency in task.depends_on:
            if dependency not in seen:
                problems.append(f"task {task.id} depends on unknown task {dependency}")
            elif dependency == task.id:
                problems.append(f"task {task.id} depends on itself")
        if task.estimated_lines > max_task_lines:
            warnings.append(
                f"task {task.id} estimates {task.estimated_lines} lines (guideline {max_task_lines})"
            )

    if len(tasks) > max_tasks:
        warnings.append(f"{len(tasks)} tasks exceed the guideline of {max_tasks}; consider splitting the feature")

    if not problems:
        graph = {task.id: list(task.depends_on) for task in tasks}
        for cycle in _find_dependency_cycles(graph):
            problems.append("dependency cycle " + " -> ".join(cycle))

    if problems:
        raise TaskGraphError(problems)

    for message in warnings:
        LOGGER.warning("%s", message)
    return TaskPlan(tasks=list(tasks), execution_order=execution_order(tasks), warnings=warnings)


def load_task_plan(path: Path, *, planning_cfg: Mapping[str, Any] | None = None) -> TaskPlan:
    """Read, parse and validate ``tasks.json`` using the ``planning`` config limits."""
    cfg = planning_cfg or {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise TaskGraphError([f"{path.name} was not produced"]) from error
    except (OSError, json.JSONDecodeError) as error:
        raise TaskGraphError([f"{path.name} is not valid JSON: {error}"]) from error
    return validate_tasks(
        parse_tasks(payload),
        max_tasks=int(cfg.get("max_tasks") or DEFAULT_MAX_TASKS),
        max_task_lines=int(cfg.get("max_task_lines") or DEFAULT_MAX_TASK_LINES),
        max_files_per_task=int(cfg.get("max_files_per_task") or DEFAULT_MAX_FILES_PER_TASK),
    )


__all__ = [
    "TaskGraphError",
    "execution_order",
    "load_task_plan",
    "parse_tasks",
    "validate_tasks",
]
