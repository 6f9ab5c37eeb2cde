"""Provide the public `methodology_engine` package exports."""

from __future__ import annotations

from .context import ContextArtifact, PhaseExecutionContext, ValidatorRegistry
from .criteria import check_criteria, evaluate_criterion
from .errors import (
    ConfigError,
    MethodologyEngineError,
    MethodologyNotFoundError,
    MethodologyValidationError,
)
from .executor import ExecutorState, MethodologyExecutor, run_methodology
from .instantiation import create_tasks_from_phase
from .models import (
    CriterionResult,
    ExecutionOutcome,
    MethodologySuggestion,
    MethodologyTask,
    PhaseExecutionResult,
    Requirement,
)
from .repository import (
    DirectoryFetcher,
    HttpFetcher,
    MethodologyRepository,
    StaticFetcher,
    repository_from_source,
)
from .scheduler import PhaseScheduler
from .schema import Methodology, Phase, TaskTemplate, parse_methodology
from .suggest import MethodologySuggester

__all__ = [
    "ConfigError",
    "ContextArtifact",
    "CriterionResult",
    "DirectoryFetcher",
    "ExecutionOutcome",
    "ExecutorState",
    "HttpFetcher",
    "Methodology",
    "MethodologyEngineError",
    "MethodologyExecutor",
    "MethodologyNotFoundError",
    "MethodologyRepository",
    "MethodologySuggester",
    "MethodologySuggestion",
    "MethodologyTask",
    "MethodologyValidationError",
    "Phase",
    "PhaseExecutionContext",
    "PhaseExecutionResult",
    "PhaseScheduler",
    "Requirement",
    "StaticFetcher",
    "TaskTemplate",
    "ValidatorRegistry",
    "check_criteria",
    "create_tasks_from_phase",
    "evaluate_criterion",
    "parse_methodology",
    "repository_from_source",
    "run_methodology",
]
