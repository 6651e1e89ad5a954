"""Typed task records produced by the decomposition stage."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskCategory(str, Enum):
    SETUP = "SETUP"
    IMPLEMENT = "IMPLEMENT"
    INTEGRATE = "INTEGRATE"
    CONFIGURE = "CONFIGURE"
    VALIDATE = "VALIDATE"
    DOCUMENT = "DOCUMENT"
    CLEANUP = "CLEANUP"


class Priority(str, Enum):
    """P0 must ship, P3 is polish; lower numbers sort first."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        return int(self.value[1])


class PlanTask(BaseModel):
    """One atomic unit of work from ``tasks.json``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    category: TaskCategory = TaskCategory.IMPLEMENT
    depends_on: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    estimated_lines: int = 0
    verification: str = ""
    rollback: str = ""
    description: str = ""
    priority: Optional[Priority] = None
    defer_safe: Optional[bool] = None
    defer_impact: str = ""

    @field_validator("id", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = str(value).strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _normalise_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("priority", mode="before")
    @classmethod
    def _normalise_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip().upper()
            return cleaned or None
        return value


class TaskPlan(BaseModel):
    """Validated task graph plus its execution order and non-fatal warnings."""

    tasks: List[PlanTask] = Field(default_factory=list)
    execution_order: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def by_id(self) -> Dict[str, PlanTask]:
        return {task.id: task for task in self.tasks}

    def ordered(self) -> List[PlanTask]:
        index = self.by_id()
        return [index[task_id] for task_id in self.execution_order if task_id in index]


__all__ = ["PlanTask", "Priority", "TaskCategory", "TaskPlan"]
