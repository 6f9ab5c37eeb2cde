"""Render methodologies as Mermaid state diagrams and rich text trees."""

from __future__ import annotations

import io
import re
from typing import Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from .constants import DEFAULT_MAX_ITERATIONS
from .instantiation import create_tasks_from_phase
from .scheduler import plan_batches
from .schema import (
    ArtifactExistsCriterion,
    Criterion,
    CustomCriterion,
    MetricThresholdCriterion,
    Methodology,
    Phase,
    PhaseCompletedCriterion,
    RequirementSatisfiedCriterion,
)

_ALIAS_UNSAFE = re.compile(r"\s+")


def format_criterion(criterion: Criterion) -> str:
    """Short human-readable label for a criterion."""
    if isinstance(criterion, ArtifactExistsCriterion):
        return f"Artifact - {criterion.artifact_type}"
    if isinstance(criterion, RequirementSatisfiedCriterion):
        return "Requirement met"
    if isinstance(criterion, MetricThresholdCriterion):
        return f"{criterion.metric} {criterion.operator.value} {criterion.threshold:g}"
    if isinstance(criterion, PhaseCompletedCriterion):
        return "Phase complete"
    if isinstance(criterion, CustomCriterion):
        return criterion.description or f"Custom - {criterion.custom_validator}"
    return "Criterion"


def format_criteria(criteria: Sequence[Criterion]) -> str:
    if not criteria:
        return "Complete"
    if len(criteria) == 1:
        return format_criterion(criteria[0])
    return f"{len(criteria)} criteria met"


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)] + "…"


def _mermaid_escape(text: str) -> str:
    return text.replace('"', '\\"')


def generate_mermaid(
    methodology: Methodology,
    *,
    include_notes: bool = True,
    show_task_details: bool = False,
    max_notes_length: int = 200,
) -> str:
    """Generate a Mermaid ``stateDiagram-v2`` for the sequential phase flow.

    Phases are aliased ``Phase1..N``. Each transition is labelled with the
    source phase's exit criteria, and repeatable phases get a self loop.
    """
    lines: list[str] = ["stateDiagram-v2", ""]
    phases = methodology.phases
    if not phases:
        lines.append("[*] --> [*]")
        return "\n".join(lines)

    aliases = {phase.id: f"Phase{index + 1}" for index, phase in enumerate(phases)}
    lines.append(f"[*] --> {aliases[phases[0].id]}")
    lines.append("")

    for index, phase in enumerate(phases):
        alias = aliases[phase.id]
        anchor = _ALIAS_UNSAFE.sub("-", phase.display_name.lower())
        lines.append(f"state \"<a href='#phase-{index}-{anchor}'>{_mermaid_escape(phase.display_name)}</a>\" as {alias}")

        if include_notes and phase.description:
            lines.append(f"note right of {alias}: {_mermaid_escape(_truncate(phase.description, max_notes_length))}")

        if show_task_details and phase.tasks:
            titles = "\\n".join(f"- {t.title}" for t in phase.tasks[:3])
            more = f"\\n… +{len(phase.tasks) - 3} more" if len(phase.tasks) > 3 else ""
            lines.append(f"{alias}: {titles}{more}")

        if phase.repeatable:
            lines.append(f"{alias} --> {alias}: Repeat until exit criteria met")

        if index < len(phases) - 1:
            target = aliases[phases[index + 1].id]
        else:
            target = "[*]"
        if phase.exit_criteria:
            lines.append(f"{alias} --> {target}: {format_criteria(phase.exit_criteria)}")
        else:
            lines.append(f"{alias} --> {target}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def _phase_branch(tree: Tree, phase: Phase) -> None:
    label = f"[bold]{escape(phase.display_name)}[/bold] [dim]({escape(phase.id)})[/dim]"
    if phase.repeatable:
        label += " [yellow]↻ repeatable[/yellow]"
    branch = tree.add(label)
    if phase.entry_criteria:
        entry = branch.add("[cyan]entry[/cyan]")
        for criterion in phase.entry_criteria:
            entry.add(escape(format_criterion(criterion)))
    tasks = branch.add(f"[green]tasks[/green] ({len(phase.tasks)})")
    for template in phase.tasks:
        deps = f" [dim](depends on: {escape(', '.join(template.dependencies))})[/dim]" if template.dependencies else ""
        tasks.add(f"{escape(template.id)}: {escape(template.title)}{deps}")
    if phase.exit_criteria:
        exit_ = branch.add("[magenta]exit[/magenta]")
        for criterion in phase.exit_criteria:
            exit_.add(escape(format_criterion(criterion)))


def render_methodology_tree(methodology: Methodology, *, width: int = 100) -> str:
    """Render phases, criteria and task dependencies as plain text."""
    console = Console(record=True, width=width, file=io.StringIO())
    tree = Tree(f"[bold]{escape(methodology.display_name)}[/bold] [dim]({escape(methodology.id)})[/dim]")
    for phase in methodology.phases:
        _phase_branch(tree, phase)
    console.print(tree)
    return console.export_text()


def render_execution_plan(
    methodology: Methodology,
    *,
    max_iterations: Optional[int] = None,
    max_concurrency: Optional[int] = None,
    width: int = 100,
) -> str:
    """Render the ready batches each phase would run, without executing anything.

    ``max_iterations``/``max_concurrency`` override the methodology's own
    configuration, the same way they would for a real run.
    """
    config = methodology.configuration
    iterations = max_iterations or config.max_iterations or DEFAULT_MAX_ITERATIONS
    concurrency = max_concurrency
    if concurrency is None:
        concurrency = config.parallelization.max_concurrent_tasks if config.parallelization.enabled else 1

    console = Console(record=True, width=width, file=io.StringIO())
    console.print(f"[bold]Execution Plan: {escape(methodology.display_name)}[/bold]")
    console.print(f"Phases: {len(methodology.phases)}")
    console.print(f"Max iterations: {iterations}  Max concurrency: {concurrency or 'unbounded'}")
    console.print()

    for index, phase in enumerate(methodology.phases, 1):
        tasks = create_tasks_from_phase(methodology, phase, workflow_id="plan")
        plan = plan_batches(tasks)
        suffix = " (repeatable)" if phase.repeatable else ""
        console.print(f"[bold cyan]Phase {index}: {escape(phase.display_name)}[/bold cyan]{suffix}")
        console.print(f"  Tasks: {plan.total_tasks}  Batches: {len(plan.batches)}  Max parallelism: {plan.max_parallelism}")
        for batch_idx, batch in enumerate(plan.batches, 1):
            console.print(f"  Batch {batch_idx}: {escape(', '.join(batch))}")
        if plan.unreachable:
            console.print(f"  [red]Unreachable: {escape(', '.join(plan.unreachable))}[/red]")
        console.print()

    return console.export_text()

