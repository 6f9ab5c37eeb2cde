"""Drive a workflow through a methodology's phases.

The executor walks phases strictly in declared order. For each phase it:

1. Evaluates the entry criteria; any unmet criterion fails the run.
2. Fires ``on_phase_start`` and instantiates the phase's tasks.
3. Runs the tasks through the :class:`PhaseScheduler`.
4. Evaluates the exit criteria against a fresh context.
5. Fires ``on_phase_complete``.
6. Fails on any task failure; otherwise advances when the exit criteria hold,
   reruns a repeatable phase until the iteration cap, or fails.

Domain failures are returned as an :class:`ExecutionOutcome`, never raised.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from loguru import logger

from .constants import DEFAULT_MAX_ITERATIONS
from .context import PhaseExecutionContext
from .criteria import all_satisfied, check_criteria, describe_unsatisfied
from .instantiation import create_tasks_from_phase
from .logging_utils import pretty, summarize_outcome, summarize_phase_result
from .models import ExecutionOutcome, PhaseExecutionResult
from .scheduler import PhaseScheduler, TaskExecutor
from .schema import Methodology, Phase

ContextAccessor = Callable[[], PhaseExecutionContext]
PhaseStartHook = Callable[[Phase], Union[None, Awaitable[None]]]
PhaseCompleteHook = Callable[[Phase, PhaseExecutionResult], Union[None, Awaitable[None]]]


class ExecutorState(str, Enum):
    BEFORE_PHASE = "before_phase"
    ENTRY_CHECK = "entry_check"
    EXECUTING = "executing"
    EXIT_CHECK = "exit_check"
    ADVANCE = "advance"
    REPEAT = "repeat"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MethodologyExecutor:
    """Execute a methodology from its first (or a resumed) phase to the end.

    One executor drives one run; :meth:`execute` may only be called once.
    """

    def __init__(
        self,
        methodology: Methodology,
        execute_task: TaskExecutor,
        get_context: ContextAccessor,
        *,
        max_iterations: Optional[int] = None,
        on_phase_start: Optional[PhaseStartHook] = None,
        on_phase_complete: Optional[PhaseCompleteHook] = None,
        scheduler: Optional[PhaseScheduler] = None,
        start_phase: Optional[str] = None,
        completed_phases: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize the executor.

        Args:
            methodology: Validated methodology to run.
            execute_task: Callback performing one task, returning success.
            get_context: Returns the current execution context; called fresh
                for every criterion check.
            max_iterations: Override for the repeatable-phase iteration cap.
                ``None`` or a non-positive value falls back to the
                methodology configuration, then to 10.
            on_phase_start: Notified before a phase's tasks run.
            on_phase_complete: Notified with each phase attempt's result.
            scheduler: Scheduler to use; defaults to one bounded by the
                methodology's ``parallelization.maxConcurrentTasks``.
            start_phase: Resume from this phase id instead of the first phase.
            completed_phases: Phases already completed by an earlier run.
        """
        self.methodology = methodology
        self._execute_task = execute_task
        self._get_context = get_context
        self._max_iterations_override = max_iterations if max_iterations and max_iterations > 0 else None
        self._on_phase_start = on_phase_start
        self._on_phase_complete = on_phase_complete
        self.scheduler = scheduler or PhaseScheduler(self._default_concurrency(methodology))

        self.current_phase_index = methodology.phase_index(start_phase) if start_phase else 0
        self._completed_phases: list[str] = []
        for phase_id in completed_phases or ():
            if phase_id not in self._completed_phases:
                self._completed_phases.append(phase_id)
        self.iteration_count = 0
        self.state = ExecutorState.BEFORE_PHASE
        self.phase_results: list[PhaseExecutionResult] = []
        self._started = False

    @staticmethod
    def _default_concurrency(methodology: Methodology) -> Optional[int]:
        parallel = methodology.configuration.parallelization
        if not parallel.enabled:
            return 1
        return parallel.max_concurrent_tasks

    @property
    def max_iterations(self) -> int:
        return (
            self._max_iterations_override
            or self.methodology.configuration.max_iterations
            or DEFAULT_MAX_ITERATIONS
        )

    @property
    def completed_phases(self) -> list[str]:
        return list(self._completed_phases)

    @property
    def current_phase(self) -> Optional[Phase]:
        if 0 <= self.current_phase_index < len(self.methodology.phases):
            return self.methodology.phases[self.current_phase_index]
        return None

    # -- run -----------------------------------------------------------------

    async def execute(self, workflow_id: str) -> ExecutionOutcome:
        """Run the methodology for *workflow_id*.

        Returns:
            ExecutionOutcome with ``success`` and the completed phases, or the
            failed phase and a reason.
        """
        if self._started:
            raise RuntimeError("MethodologyExecutor.execute() may only be called once")
        self._started = True

        logger.info(
            "Executing methodology {} for workflow {} ({} phases, max iterations {})",
            self.methodology.id, workflow_id, len(self.methodology.phases), self.max_iterations,
        )
        try:
            outcome = await self._run(workflow_id)
        except Exception as exc:
            logger.exception("Methodology {} aborted: {}", self.methodology.id, exc)
            phase = self.current_phase
            outcome = self._fail(phase.id if phase else None, str(exc) or type(exc).__name__)
        logger.debug("Workflow {} outcome: {}", workflow_id, pretty(summarize_outcome(outcome)))
        return outcome

    async def _run(self, workflow_id: str) -> ExecutionOutcome:
        phases = self.methodology.phases
        while self.current_phase_index < len(phases):
            phase = phases[self.current_phase_index]
            self._transition(ExecutorState.BEFORE_PHASE, phase)

            self._transition(ExecutorState.ENTRY_CHECK, phase)
            entry_results = check_criteria(phase.entry_criteria, self._context())
            if not all_satisfied(entry_results):
                return self._fail(
                    phase.id, f"Entry criteria not met: {describe_unsatisfied(entry_results)}"
                )

            await self._notify(self._on_phase_start, phase)

            self._transition(ExecutorState.EXECUTING, phase)
            result = await self._execute_phase(phase, workflow_id)
            self.phase_results.append(result)
            logger.debug("Phase attempt: {}", pretty(summarize_phase_result(result)))

            await self._notify(self._on_phase_complete, phase, result)

            if not result.success:
                return self._fail(
                    phase.id,
                    f"Phase execution failed: {result.tasks_completed} completed, "
                    f"{result.tasks_failed} failed",
                )

            if all_satisfied(result.exit_criteria_results):
                self._transition(ExecutorState.ADVANCE, phase)
                self._completed_phases.append(phase.id)
                self.current_phase_index += 1
                self.iteration_count = 0
                logger.info("Phase {} completed", phase.id)
                continue

            unmet = describe_unsatisfied(result.exit_criteria_results)
            if phase.repeatable:
                self._transition(ExecutorState.REPEAT, phase)
                self.iteration_count += 1
                if self.iteration_count >= self.max_iterations:
                    return self._fail(phase.id, f"Max iterations ({self.max_iterations}) reached")
                logger.info(
                    "Repeating phase {} (iteration {}/{}): {}",
                    phase.id, self.iteration_count + 1, self.max_iterations, unmet,
                )
                continue

            return self._fail(phase.id, f"Exit criteria not met: {unmet}")

        self._transition(ExecutorState.SUCCEEDED)
        logger.info("Methodology {} succeeded", self.methodology.id)
        return ExecutionOutcome(
            success=True,
            completed_phases=self.completed_phases,
            phase_results=list(self.phase_results),
        )

    async def _execute_phase(self, phase: Phase, workflow_id: str) -> PhaseExecutionResult:
        tasks = create_tasks_from_phase(self.methodology, phase, workflow_id)
        logger.info("Phase {} started with {} task(s)", phase.id, len(tasks))
        run = await self.scheduler.run_phase(tasks, self._execute_task)

        # Exit criteria only after every task has been attempted.
        self._transition(ExecutorState.EXIT_CHECK, phase)
        exit_results = check_criteria(phase.exit_criteria, self._context())

        success = run.failed == 0
        should_continue = success and all_satisfied(exit_results)
        next_index = self.current_phase_index + 1
        next_phase_id = None
        if should_continue and next_index < len(self.methodology.phases):
            next_phase_id = self.methodology.phases[next_index].id

        return PhaseExecutionResult(
            phase_id=phase.id,
            success=success,
            tasks_completed=run.completed,
            tasks_failed=run.failed,
            exit_criteria_results=exit_results,
            should_continue=should_continue,
            next_phase_id=next_phase_id,
            iteration=self.iteration_count + 1,
        )

    # -- helpers -------------------------------------------------------------

    def _context(self) -> PhaseExecutionContext:
        # The executor's record of completed phases is authoritative.
        return self._get_context().with_completed_phases(self._completed_phases)

    def _transition(self, state: ExecutorState, phase: Optional[Phase] = None) -> None:
        self.state = state
        logger.debug(
            "Executor {} -> {} (phase={}, iteration={})",
            self.methodology.id, state.value, phase.id if phase else None, self.iteration_count,
        )

    def _fail(self, phase_id: Optional[str], error: str) -> ExecutionOutcome:
        self._transition(ExecutorState.FAILED)
        logger.warning("Methodology {} failed at phase {}: {}", self.methodology.id, phase_id, error)
        return ExecutionOutcome(
            success=False,
            completed_phases=self.completed_phases,
            failed_phase=phase_id,
            error=error,
            phase_results=list(self.phase_results),
        )

    async def _notify(self, hook: Optional[Callable[..., Any]], *args: Any) -> None:
        """Fire a lifecycle hook; its return value is ignored and errors are logged."""
        if hook is None:
            return
        try:
            outcome = hook(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Error in phase lifecycle hook {}", getattr(hook, "__name__", hook))


def run_methodology(
    methodology: Methodology,
    workflow_id: str,
    execute_task: TaskExecutor,
    get_context: ContextAccessor,
    **options: Any,
) -> ExecutionOutcome:
    """Synchronous wrapper around :meth:`MethodologyExecutor.execute`."""
    executor = MethodologyExecutor(methodology, execute_task, get_context, **options)
    return asyncio.run(executor.execute(workflow_id))
