"""Criterion evaluation for phase entry and exit gates.

Evaluation is a pure predicate over a :class:`PhaseExecutionContext`. It never
raises: an incomplete criterion, a missing metric, an unknown validator or a
validator that throws all produce an unsatisfied :class:`CriterionResult`
whose ``reason`` says why.
"""

from __future__ import annotations

import inspect
import math
import operator as _op
from typing import Any, Callable, Iterable

from loguru import logger

from .context import PhaseExecutionContext
from .models import CriterionResult
from .schema import (
    ArtifactExistsCriterion,
    ComparisonOperator,
    Criterion,
    CustomCriterion,
    MetricThresholdCriterion,
    PhaseCompletedCriterion,
    RequirementSatisfiedCriterion,
)

_COMPARATORS: dict[ComparisonOperator, Callable[[Any, Any], bool]] = {
    ComparisonOperator.LT: _op.lt,
    ComparisonOperator.LE: _op.le,
    ComparisonOperator.GT: _op.gt,
    ComparisonOperator.GE: _op.ge,
    ComparisonOperator.EQ: _op.eq,
    ComparisonOperator.NE: _op.ne,
}


def _result(criterion: Criterion, satisfied: bool, reason: str) -> CriterionResult:
    return CriterionResult(criterion=criterion, satisfied=satisfied, reason=reason)


def _evaluate_artifact_exists(
    criterion: ArtifactExistsCriterion, context: PhaseExecutionContext
) -> CriterionResult:
    artifact_type = criterion.artifact_type
    if not artifact_type:
        return _result(criterion, False, "No artifact type specified")
    exists = artifact_type in context.artifact_types()
    if exists:
        return _result(criterion, True, f'Artifact of type "{artifact_type}" exists')
    return _result(criterion, False, f'Missing artifact of type "{artifact_type}"')


def _evaluate_requirement_satisfied(
    criterion: RequirementSatisfiedCriterion, context: PhaseExecutionContext
) -> CriterionResult:
    requirement_id = criterion.requirement_id
    if not requirement_id:
        return _result(criterion, False, "No requirement ID specified")
    if requirement_id in context.satisfied_requirements:
        return _result(criterion, True, f'Requirement "{requirement_id}" is satisfied')
    return _result(criterion, False, f'Requirement "{requirement_id}" is not satisfied')


def _evaluate_metric_threshold(
    criterion: MetricThresholdCriterion, context: PhaseExecutionContext
) -> CriterionResult:
    metric = getattr(criterion, "metric", None)
    threshold = getattr(criterion, "threshold", None)
    operator = getattr(criterion, "operator", None)
    comparator = _COMPARATORS.get(operator) if operator is not None else None
    if not metric or threshold is None or comparator is None:
        return _result(criterion, False, "Incomplete metric threshold specification")

    if metric not in context.metrics:
        return _result(criterion, False, f'Metric "{metric}" not found')
    value = context.metrics[metric]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return _result(criterion, False, f'Metric "{metric}" is not numeric: {value!r}')

    satisfied = bool(comparator(value, threshold))
    return _result(
        criterion,
        satisfied,
        f'Metric "{metric}": {value} {getattr(operator, "value", operator)} {threshold} = {str(satisfied).lower()}',
    )


def _evaluate_phase_completed(
    criterion: PhaseCompletedCriterion, context: PhaseExecutionContext
) -> CriterionResult:
    phase_id = criterion.phase_id
    if not phase_id:
        return _result(criterion, False, "No phase ID specified")
    if phase_id in context.completed_phases:
        return _result(criterion, True, f'Phase "{phase_id}" is completed')
    return _result(criterion, False, f'Phase "{phase_id}" is not completed')


def _evaluate_custom(criterion: CustomCriterion, context: PhaseExecutionContext) -> CriterionResult:
    name = criterion.custom_validator
    if not name:
        return _result(criterion, False, "No custom validator specified")

    validator = context.validators.get(name)
    if validator is None:
        return _result(criterion, False, f'Custom validator "{name}": validator not found')

    try:
        outcome = validator(context)
    except Exception as exc:
        logger.warning("Custom validator {} raised {}: {}", name, type(exc).__name__, exc)
        message = str(exc) or type(exc).__name__
        return _result(criterion, False, f'Custom validator "{name}" error: {message}')

    if inspect.isawaitable(outcome):
        if inspect.iscoroutine(outcome):
            outcome.close()
        return _result(
            criterion, False, f'Custom validator "{name}" returned an awaitable; validators must be synchronous'
        )

    satisfied = bool(outcome)
    return _result(
        criterion, satisfied, f'Custom validator "{name}" returned {str(satisfied).lower()}'
    )


def evaluate_criterion(criterion: Criterion, context: PhaseExecutionContext) -> CriterionResult:
    """Evaluate one criterion against *context*. Never raises."""
    try:
        if isinstance(criterion, ArtifactExistsCriterion):
            return _evaluate_artifact_exists(criterion, context)
        if isinstance(criterion, RequirementSatisfiedCriterion):
            return _evaluate_requirement_satisfied(criterion, context)
        if isinstance(criterion, MetricThresholdCriterion):
            return _evaluate_metric_threshold(criterion, context)
        if isinstance(criterion, PhaseCompletedCriterion):
            return _evaluate_phase_completed(criterion, context)
        if isinstance(criterion, CustomCriterion):
            return _evaluate_custom(criterion, context)
    except Exception as exc:
        logger.exception("Unexpected error evaluating criterion {!r}", criterion)
        return _result(criterion, False, f"Criterion evaluation error: {exc}")

    kind = getattr(criterion, "type", type(criterion).__name__)
    return _result(criterion, False, f"Unknown criterion type: {kind}")


def check_criteria(
    criteria: Iterable[Criterion], context: PhaseExecutionContext
) -> list[CriterionResult]:
    """Evaluate every criterion in order. An empty list means the gate is open."""
    return [evaluate_criterion(c, context) for c in criteria]


def all_satisfied(results: Iterable[CriterionResult]) -> bool:
    return all(r.satisfied for r in results)


def describe_unsatisfied(results: Iterable[CriterionResult]) -> str:
    return ", ".join(r.reason for r in results if not r.satisfied)
