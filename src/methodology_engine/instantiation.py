"""Instantiate runnable tasks from a phase's task templates."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from .constants import DEFAULT_TASK_COMPLEXITY, TASK_COMPLEXITIES
from .models import MethodologyTask, Requirement
from .schema import Methodology, Phase, TaskTemplate


def normalize_complexity(complexity: Optional[str]) -> str:
    """Collapse any complexity outside the task scale to ``simple``."""
    if complexity in TASK_COMPLEXITIES:
        return complexity
    return DEFAULT_TASK_COMPLEXITY


def create_task_from_template(
    methodology_id: str,
    phase_id: str,
    template: TaskTemplate,
    workflow_id: str,
    *,
    now: Optional[datetime] = None,
) -> MethodologyTask:
    created_at = now or datetime.now(timezone.utc)
    task_id = uuid.uuid4().hex

    requirements = [
        Requirement(
            id=f"{template.id}-req-{index}",
            type=req.type,
            description=req.description,
            priority=req.priority,
            validation_criteria=list(req.validation_criteria),
            task_id=task_id,
        )
        for index, req in enumerate(template.requirements)
    ]

    due_date = None
    if template.estimated_duration:
        due_date = created_at + timedelta(minutes=template.estimated_duration)

    return MethodologyTask(
        id=task_id,
        workflow_id=workflow_id,
        title=template.title,
        description=template.description,
        complexity=normalize_complexity(template.complexity),
        dependencies=list(template.dependencies),
        requirements=requirements,
        methodology_id=methodology_id,
        phase_id=phase_id,
        task_template_id=template.id,
        assigned_role_id=template.assigned_role,
        due_date=due_date,
        created_at=created_at,
    )


def create_tasks_from_phase(
    methodology: Methodology,
    phase: Phase,
    workflow_id: str,
    *,
    now: Optional[datetime] = None,
) -> list[MethodologyTask]:
    """Create one task per template of *phase*, in declared order.

    Dependencies are copied verbatim: they name template ids within the same
    phase, not task instance ids.
    """
    created_at = now or datetime.now(timezone.utc)
    return [
        create_task_from_template(methodology.id, phase.id, template, workflow_id, now=created_at)
        for template in phase.tasks
    ]
