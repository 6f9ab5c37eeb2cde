"""Dependency-aware scheduling of one phase's tasks.

Tasks are run in *ready batches*: each round collects every task that has not
been attempted yet and whose dependencies have all been attempted, dispatches
the whole batch concurrently, and waits for all of it before computing the
next round. Every task is attempted at most once; a failure does not block
its siblings. When no task is ready but work remains (a missing or circular
dependency) the remaining tasks are counted as failed and the pass ends.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from loguru import logger

from .models import MethodologyTask, PhaseRunResult

TaskExecutor = Callable[[MethodologyTask], Union[bool, Awaitable[bool]]]


@dataclass
class ExecutionPlan:
    """Ready batches computed without executing anything."""

    batches: list[list[str]]          # template ids, one list per round
    unreachable: list[str] = field(default_factory=list)
    total_tasks: int = 0

    @property
    def max_parallelism(self) -> int:
        return max((len(b) for b in self.batches), default=0)


def _ready(tasks: Sequence[MethodologyTask], executed: set[str]) -> list[MethodologyTask]:
    return [
        t for t in tasks
        if t.task_template_id not in executed
        and all(dep in executed for dep in t.dependencies)
    ]


def plan_batches(tasks: Sequence[MethodologyTask]) -> ExecutionPlan:
    """Compute the rounds :meth:`PhaseScheduler.run_phase` would dispatch."""
    executed: set[str] = set()
    batches: list[list[str]] = []
    while len(executed) < len(tasks):
        ready = _ready(tasks, executed)
        if not ready:
            break
        batch = [t.task_template_id for t in ready]
        batches.append(batch)
        executed.update(batch)
    unreachable = [t.task_template_id for t in tasks if t.task_template_id not in executed]
    return ExecutionPlan(batches=batches, unreachable=unreachable, total_tasks=len(tasks))


async def _call_task_executor(execute_task: TaskExecutor, task: MethodologyTask) -> Any:
    if inspect.iscoroutinefunction(execute_task):
        return await execute_task(task)
    # Plain callables run on worker threads so a batch is genuinely concurrent.
    outcome = await asyncio.to_thread(execute_task, task)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


class PhaseScheduler:
    """Run a phase's tasks in dependency order, one ready batch at a time."""

    def __init__(self, max_concurrency: Optional[int] = None) -> None:
        """Initialize the scheduler.

        Args:
            max_concurrency: Upper bound on tasks of one batch running at the
                same time. ``None`` dispatches the whole batch at once.
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer")
        self.max_concurrency = max_concurrency
        self._task_status: dict[str, str] = {}   # template id -> status

    async def run_phase(
        self,
        tasks: Sequence[MethodologyTask],
        execute_task: TaskExecutor,
    ) -> PhaseRunResult:
        """Attempt every task once, respecting template dependencies.

        Args:
            tasks: Tasks instantiated for one phase attempt.
            execute_task: Caller callback returning success. May be sync or
                async; exceptions count as failures.

        Returns:
            PhaseRunResult with completed/failed tallies and the dispatched rounds.
        """
        result = PhaseRunResult()
        executed: set[str] = set()
        self._task_status = {t.task_template_id: "pending" for t in tasks}
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def _run_one(task: MethodologyTask) -> bool:
            if semaphore is None:
                return await self._attempt(task, execute_task)
            async with semaphore:
                return await self._attempt(task, execute_task)

        while len(executed) < len(tasks):
            ready = _ready(tasks, executed)
            if not ready:
                remaining = [t.task_template_id for t in tasks if t.task_template_id not in executed]
                logger.warning(
                    "No runnable tasks left; {} unreachable (missing or circular dependency): {}",
                    len(remaining), ", ".join(remaining),
                )
                for template_id in remaining:
                    self._task_status[template_id] = "unreachable"
                result.unreachable = remaining
                result.failed += len(remaining)
                break

            batch = [t.task_template_id for t in ready]
            result.rounds.append(batch)
            logger.debug("Dispatching batch {} with {} task(s): {}", len(result.rounds), len(batch), batch)

            outcomes = await asyncio.gather(*(_run_one(t) for t in ready))
            for task, ok in zip(ready, outcomes):
                if ok:
                    result.completed += 1
                else:
                    result.failed += 1
                executed.add(task.task_template_id)

        return result

    async def _attempt(self, task: MethodologyTask, execute_task: TaskExecutor) -> bool:
        template_id = task.task_template_id
        self._task_status[template_id] = "running"
        try:
            ok = bool(await _call_task_executor(execute_task, task))
        except Exception as exc:
            logger.exception("Unexpected error executing task {} ({}): {}", template_id, task.id, exc)
            ok = False
        self._task_status[template_id] = "completed" if ok else "failed"
        if not ok:
            logger.warning("Task {} failed in phase {}", template_id, task.phase_id)
        return ok

    def plan(self, tasks: Sequence[MethodologyTask]) -> ExecutionPlan:
        return plan_batches(tasks)

    def get_status(self) -> dict[str, str]:
        """Status of each task in the most recent phase run, keyed by template id."""
        return dict(self._task_status)
