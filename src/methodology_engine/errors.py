"""Exception types raised by the methodology engine.

Domain-level failures (unmet criteria, failed tasks, the iteration cap) are
reported as structured results and never raised; these exceptions cover
loading and configuration problems only.
"""

from __future__ import annotations


class MethodologyEngineError(Exception):
    """Base class for all engine errors."""


class MethodologyValidationError(MethodologyEngineError, ValueError):
    """A methodology or manifest document failed load-time validation."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}")


class MethodologyNotFoundError(MethodologyEngineError, KeyError):
    """No methodology with the requested id could be loaded."""

    def __init__(self, methodology_id: str) -> None:
        self.methodology_id = methodology_id
        super().__init__(methodology_id)

    def __str__(self) -> str:
        return f"Unknown methodology '{self.methodology_id}'"


class ConfigError(MethodologyEngineError):
    """The engine configuration file could not be used."""
