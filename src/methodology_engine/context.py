"""Execution context consulted by criteria, and the custom validator registry.

The context is owned by the caller: it records which artifacts exist, which
requirements are satisfied, which phases have completed, and the metrics
collected so far. The engine reads it at criterion-evaluation points and never
mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Mapping, Optional

Validator = Callable[["PhaseExecutionContext"], bool]


class ValidatorRegistry:
    """Named custom validators referenced by ``custom`` criteria.

    Validators are registered by the caller before a run starts. Each one is
    called with the current :class:`PhaseExecutionContext` and returns
    ``True``/``False``; raising is reserved for truly exceptional conditions
    and is reported as an unsatisfied criterion.
    """

    def __init__(self, validators: Optional[Mapping[str, Validator]] = None) -> None:
        self._validators: dict[str, Validator] = dict(validators or {})

    def register(self, name: str, fn: Validator) -> Validator:
        if not name:
            raise ValueError("validator name must be non-empty")
        self._validators[name] = fn
        return fn

    def validator(self, name: str) -> Callable[[Validator], Validator]:
        """Decorator form of :meth:`register`."""
        def _decorator(fn: Validator) -> Validator:
            return self.register(name, fn)
        return _decorator

    def unregister(self, name: str) -> None:
        self._validators.pop(name, None)

    def get(self, name: str) -> Optional[Validator]:
        return self._validators.get(name)

    def has(self, name: str) -> bool:
        return name in self._validators

    def names(self) -> list[str]:
        return sorted(self._validators.keys())

    def __len__(self) -> int:
        return len(self._validators)


@dataclass(frozen=True)
class ContextArtifact:
    """An artifact known to the workflow, identified by its declared type."""
    type: str
    content: Any = None


@dataclass
class PhaseExecutionContext:
    """Snapshot of workflow state that entry/exit criteria are evaluated against."""
    artifacts: dict[str, ContextArtifact] = field(default_factory=dict)
    satisfied_requirements: set[str] = field(default_factory=set)
    completed_phases: set[str] = field(default_factory=set)
    metrics: dict[str, float] = field(default_factory=dict)
    validators: ValidatorRegistry = field(default_factory=ValidatorRegistry)

    def artifact_types(self) -> set[str]:
        types: set[str] = set()
        for artifact in self.artifacts.values():
            if isinstance(artifact, Mapping):
                art_type = artifact.get("type")
            else:
                art_type = getattr(artifact, "type", None)
            if isinstance(art_type, str):
                types.add(art_type)
        return types

    def with_completed_phases(self, phase_ids: Iterable[str]) -> "PhaseExecutionContext":
        """Return a shallow copy whose completed phases are exactly *phase_ids*.

        Subclasses keep their type and extra fields.
        """
        return replace(self, completed_phases=set(phase_ids))
