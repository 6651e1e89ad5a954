"""Feature-planning support: task graphs, priorities, scope and deferral."""

from .decomposer import TaskGraphError, execution_order, load_task_plan, parse_tasks, validate_tasks
from .deferral import DeferralOutcome, defer_tasks
from .pipeline import (
    PlanningOptions,
    PlanningOutcome,
    PlanningPipeline,
    StageRecord,
    TaskRun,
    ValidationGateError,
    parse_verdict,
)
from .prioritizer import PriorityRules, prioritize, render_priorities
from .schemas import PlanTask, Priority, TaskCategory, TaskPlan
from .scope import ScopeError, ScopeSelection, select_scope

__all__ = [
    "DeferralOutcome",
    "PlanTask",
    "PlanningOptions",
    "PlanningOutcome",
    "PlanningPipeline",
    "Priority",
    "PriorityRules",
    "ScopeError",
    "ScopeSelection",
    "StageRecord",
    "TaskCategory",
    "TaskGraphError",
    "TaskPlan",
    "TaskRun",
    "ValidationGateError",
    "defer_tasks",
    "execution_order",
    "load_task_plan",
    "parse_tasks",
    "parse_verdict",
    "prioritize",
    "render_priorities",
    "select_scope",
    "validate_tasks",
]
