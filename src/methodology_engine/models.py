"""Runtime records produced while executing a methodology."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .constants import (
    REQUIREMENT_SOURCE_EXPLICIT,
    REQUIREMENT_STATUS_PENDING,
    TASK_STATUS_PENDING,
)
from .schema import Criterion


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Requirement:
    """A requirement materialised from a template requirement descriptor."""

    id: str
    type: str
    description: str
    priority: str
    validation_criteria: list[str] = field(default_factory=list)
    source: str = REQUIREMENT_SOURCE_EXPLICIT
    status: str = REQUIREMENT_STATUS_PENDING
    task_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "source": self.source,
            "status": self.status,
            "validationCriteria": list(self.validation_criteria),
            "taskId": self.task_id,
        }


@dataclass
class MethodologyTask:
    """A task instantiated from a template for one workflow run."""

    id: str
    workflow_id: str
    title: str
    methodology_id: str
    phase_id: str
    task_template_id: str
    description: str = ""
    complexity: str = "simple"
    status: str = TASK_STATUS_PENDING
    dependencies: list[str] = field(default_factory=list)   # template ids
    requirements: list[Requirement] = field(default_factory=list)
    assigned_role_id: Optional[str] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "title": self.title,
            "description": self.description,
            "complexity": self.complexity,
            "status": self.status,
            "dependencies": list(self.dependencies),
            "requirements": [r.to_dict() for r in self.requirements],
            "methodologyId": self.methodology_id,
            "phaseId": self.phase_id,
            "taskTemplateId": self.task_template_id,
            "assignedRoleId": self.assigned_role_id,
            "dueDate": _iso(self.due_date),
            "createdAt": _iso(self.created_at),
        }


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of evaluating one criterion. Produced fresh, never persisted."""

    criterion: Criterion
    satisfied: bool
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterion": self.criterion.model_dump(by_alias=True, exclude_none=True, mode="json"),
            "satisfied": self.satisfied,
            "reason": self.reason,
        }


@dataclass
class PhaseRunResult:
    """Tally of one scheduler pass over a phase's tasks."""

    completed: int = 0
    failed: int = 0
    rounds: list[list[str]] = field(default_factory=list)   # template ids per ready batch
    unreachable: list[str] = field(default_factory=list)


@dataclass
class PhaseExecutionResult:
    """Result of one attempt at a phase."""

    phase_id: str
    success: bool
    tasks_completed: int
    tasks_failed: int
    exit_criteria_results: list[CriterionResult] = field(default_factory=list)
    should_continue: bool = False
    next_phase_id: Optional[str] = None
    iteration: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "phaseId": self.phase_id,
            "success": self.success,
            "tasksCompleted": self.tasks_completed,
            "tasksFailed": self.tasks_failed,
            "exitCriteriaResults": [r.to_dict() for r in self.exit_criteria_results],
            "shouldContinue": self.should_continue,
            "nextPhaseId": self.next_phase_id,
            "iteration": self.iteration,
        }


@dataclass
class ExecutionOutcome:
    """Result of a full methodology run."""

    success: bool
    completed_phases: list[str] = field(default_factory=list)
    failed_phase: Optional[str] = None
    error: Optional[str] = None
    phase_results: list[PhaseExecutionResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "success": self.success,
            "completedPhases": list(self.completed_phases),
        }
        if self.failed_phase is not None:
            d["failedPhase"] = self.failed_phase
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass(frozen=True)
class MethodologySuggestion:
    methodology_id: str
    name: str
    score: int
    matched_domains: tuple[str, ...] = ()
    matched_tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "methodologyId": self.methodology_id,
            "name": self.name,
            "score": self.score,
            "matchedDomains": list(self.matched_domains),
            "matchedTags": list(self.matched_tags),
        }
