"""Immutable methodology definitions loaded from JSON or YAML.

A *Methodology* is an ordered sequence of phases. Each phase carries task
templates and optional entry/exit criteria. Documents are validated when they
are loaded: a criterion of an unknown type, a metric threshold without its
metric/operator/threshold, or duplicate phase/template ids are rejected here
rather than surfacing during a run.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import MethodologyValidationError


class _Document(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------

class ComparisonOperator(str, Enum):
    LT = "<"
    LE = "≤"
    GT = ">"
    GE = "≥"
    EQ = "=="
    NE = "!="


_OPERATOR_ALIASES = {"<=": "≤", ">=": "≥", "=": "=="}


class _CriterionBase(_Document):
    description: Optional[str] = None


class ArtifactExistsCriterion(_CriterionBase):
    type: Literal["artifact-exists"] = "artifact-exists"
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")


class RequirementSatisfiedCriterion(_CriterionBase):
    type: Literal["requirement-satisfied"] = "requirement-satisfied"
    requirement_id: Optional[str] = Field(default=None, alias="requirementId")


class MetricThresholdCriterion(_CriterionBase):
    type: Literal["metric-threshold"] = "metric-threshold"
    metric: str = Field(min_length=1)
    operator: ComparisonOperator
    threshold: float

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return _OPERATOR_ALIASES.get(value, value)
        return value


class PhaseCompletedCriterion(_CriterionBase):
    type: Literal["phase-completed"] = "phase-completed"
    phase_id: Optional[str] = Field(default=None, alias="phaseId")


class CustomCriterion(_CriterionBase):
    type: Literal["custom"] = "custom"
    custom_validator: Optional[str] = Field(default=None, alias="customValidator")


Criterion = Annotated[
    Union[
        ArtifactExistsCriterion,
        RequirementSatisfiedCriterion,
        MetricThresholdCriterion,
        PhaseCompletedCriterion,
        CustomCriterion,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Task templates and phases
# ---------------------------------------------------------------------------

class TemplateRequirement(_Document):
    """Requirement descriptor declared on a task template."""
    type: Literal["functional", "non_functional", "constraint"] = "functional"
    description: str = ""
    priority: Literal["must", "should", "could", "wont"] = "should"
    validation_criteria: tuple[str, ...] = Field(default=(), alias="validationCriteria")


class TaskTemplate(_Document):
    """Reusable blueprint for a task, instantiated once per phase attempt."""
    id: str = Field(min_length=1)
    title: str
    description: str = ""
    type: Optional[str] = None
    complexity: Optional[str] = None                # normalised at instantiation
    estimated_duration: Optional[float] = Field(default=None, alias="estimatedDuration", ge=0)  # minutes
    requirements: tuple[TemplateRequirement, ...] = ()
    dependencies: tuple[str, ...] = ()               # template ids, same phase
    assigned_role: Optional[str] = Field(default=None, alias="assignedRole")


class Phase(_Document):
    id: str = Field(min_length=1)
    name: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    tasks: tuple[TaskTemplate, ...] = ()
    entry_criteria: tuple[Criterion, ...] = Field(default=(), alias="entryCriteria")
    exit_criteria: tuple[Criterion, ...] = Field(default=(), alias="exitCriteria")
    repeatable: bool = False

    @model_validator(mode="after")
    def _unique_template_ids(self) -> "Phase":
        seen: set[str] = set()
        for template in self.tasks:
            if template.id in seen:
                raise ValueError(f"duplicate task template id '{template.id}' in phase '{self.id}'")
            seen.add(template.id)
        return self

    @property
    def display_name(self) -> str:
        return self.title or self.name or self.id


# ---------------------------------------------------------------------------
# Methodology
# ---------------------------------------------------------------------------

class LocalizedText(_Document):
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class MethodologyMetadata(_Document):
    """Identifying metadata; also the shape of one manifest entry."""
    id: str = Field(min_length=1)
    name: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    version: Optional[str] = None
    domains: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    complexity: Optional[str] = None
    i18n: dict[str, LocalizedText] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            data = dict(data)
            data["name"] = data.get("title") or data.get("id") or ""
        return data

    @property
    def display_name(self) -> str:
        return self.title or self.name

    def localized_name(self, lang: Optional[str] = None) -> str:
        localized = self.i18n.get(lang) if lang else None
        if localized is not None and localized.name:
            return localized.name
        return self.name


class ParallelizationConfiguration(_Document):
    enabled: bool = True
    max_concurrent_tasks: Optional[int] = Field(default=None, alias="maxConcurrentTasks", gt=0)


class MethodologyConfiguration(_Document):
    max_iterations: Optional[int] = Field(default=None, alias="maxIterations", gt=0)
    parallelization: ParallelizationConfiguration = Field(default_factory=ParallelizationConfiguration)


class Methodology(_Document):
    metadata: MethodologyMetadata
    configuration: MethodologyConfiguration = Field(default_factory=MethodologyConfiguration)
    phases: tuple[Phase, ...] = ()

    @model_validator(mode="after")
    def _unique_phase_ids(self) -> "Methodology":
        seen: set[str] = set()
        for phase in self.phases:
            if phase.id in seen:
                raise ValueError(f"duplicate phase id '{phase.id}'")
            seen.add(phase.id)
        return self

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def display_name(self) -> str:
        return self.metadata.display_name

    def phase_ids(self) -> list[str]:
        return [p.id for p in self.phases]

    def get_phase(self, phase_id: str) -> Phase:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        available = ", ".join(self.phase_ids())
        raise KeyError(f"Unknown phase '{phase_id}' (available: {available})")

    def phase_index(self, phase_id: str) -> int:
        for index, phase in enumerate(self.phases):
            if phase.id == phase_id:
                return index
        available = ", ".join(self.phase_ids())
        raise KeyError(f"Unknown phase '{phase_id}' (available: {available})")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def parse_methodology(data: Any, *, source: Optional[str] = None) -> Methodology:
    """Validate a raw methodology document.

    Raises:
        MethodologyValidationError: If the document does not match the schema.
    """
    if not isinstance(data, dict):
        raise MethodologyValidationError(
            f"expected object, got {type(data).__name__}", source=source
        )
    try:
        return Methodology.model_validate(data)
    except ValidationError as exc:
        raise MethodologyValidationError(_format_validation_error(exc), source=source) from exc


def parse_metadata(data: Any, *, source: Optional[str] = None) -> MethodologyMetadata:
    if not isinstance(data, dict):
        raise MethodologyValidationError(
            f"expected object, got {type(data).__name__}", source=source
        )
    try:
        return MethodologyMetadata.model_validate(data)
    except ValidationError as exc:
        raise MethodologyValidationError(_format_validation_error(exc), source=source) from exc
