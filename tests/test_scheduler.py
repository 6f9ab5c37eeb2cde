"""Tests for ready-batch scheduling of a phase's tasks."""

import asyncio
import threading
import time

import pytest

from methodology_engine.instantiation import create_tasks_from_phase
from methodology_engine.scheduler import PhaseScheduler, plan_batches
from methodology_engine.schema import parse_methodology


def _tasks(templates):
    m = parse_methodology({"metadata": {"id": "m"}, "phases": [{"id": "p", "tasks": templates}]})
    return create_tasks_from_phase(m, m.phases[0], "wf")


def _chain():
    return _tasks([
        {"id": "A", "title": "A"},
        {"id": "B", "title": "B", "dependencies": ["A"]},
        {"id": "C", "title": "C", "dependencies": ["B"]},
    ])


class TestRunPhase:
    def test_chain_runs_one_round_per_task(self):
        order = []

        async def execute(task):
            order.append(task.task_template_id)
            return True

        scheduler = PhaseScheduler()
        result = asyncio.run(scheduler.run_phase(_chain(), execute))
        assert result.rounds == [["A"], ["B"], ["C"]]
        assert order == ["A", "B", "C"]
        assert result.completed == 3
        assert result.failed == 0
        assert scheduler.get_status() == {"A": "completed", "B": "completed", "C": "completed"}

    def test_independent_tasks_share_a_round(self):
        tasks = _tasks([
            {"id": "A", "title": "A"},
            {"id": "B", "title": "B"},
            {"id": "C", "title": "C", "dependencies": ["A", "B"]},
        ])

        async def execute(task):
            return True

        result = asyncio.run(PhaseScheduler().run_phase(tasks, execute))
        assert result.rounds == [["A", "B"], ["C"]]

    def test_batch_members_run_concurrently(self):
        tasks = _tasks([{"id": "A", "title": "A"}, {"id": "B", "title": "B"}])
        running = 0
        peak = 0

        async def execute(task):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return True

        asyncio.run(PhaseScheduler().run_phase(tasks, execute))
        assert peak == 2

    def test_max_concurrency_bounds_a_batch(self):
        tasks = _tasks([{"id": f"T{i}", "title": str(i)} for i in range(4)])
        running = 0
        peak = 0

        async def execute(task):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return True

        result = asyncio.run(PhaseScheduler(max_concurrency=1).run_phase(tasks, execute))
        assert peak == 1
        assert result.rounds == [["T0", "T1", "T2", "T3"]]
        assert result.completed == 4

    def test_failure_does_not_block_dependents(self):
        attempted = []

        async def execute(task):
            attempted.append(task.task_template_id)
            return task.task_template_id != "A"

        result = asyncio.run(PhaseScheduler().run_phase(_chain(), execute))
        assert attempted == ["A", "B", "C"]
        assert result.completed == 2
        assert result.failed == 1

    def test_exception_counts_as_failure(self):
        async def execute(task):
            if task.task_template_id == "B":
                raise RuntimeError("agent crashed")
            return True

        scheduler = PhaseScheduler()
        result = asyncio.run(scheduler.run_phase(_chain(), execute))
        assert result.completed == 2
        assert result.failed == 1
        assert scheduler.get_status()["B"] == "failed"

    def test_each_task_attempted_once(self):
        calls = []

        async def execute(task):
            calls.append(task.task_template_id)
            return False

        asyncio.run(PhaseScheduler().run_phase(_chain(), execute))
        assert sorted(calls) == ["A", "B", "C"]

    def test_sync_callback_runs_in_worker_thread(self):
        threads = set()

        def execute(task):
            threads.add(threading.get_ident())
            time.sleep(0.01)
            return True

        tasks = _tasks([{"id": "A", "title": "A"}, {"id": "B", "title": "B"}])
        result = asyncio.run(PhaseScheduler().run_phase(tasks, execute))
        assert result.completed == 2
        assert threading.get_ident() not in threads

    def test_circular_dependency_marks_remaining_failed(self):
        tasks = _tasks([
            {"id": "A", "title": "A"},
            {"id": "B", "title": "B", "dependencies": ["C"]},
            {"id": "C", "title": "C", "dependencies": ["B"]},
        ])

        async def execute(task):
            return True

        scheduler = PhaseScheduler()
        result = asyncio.run(scheduler.run_phase(tasks, execute))
        assert result.completed == 1
        assert result.failed == 2
        assert result.unreachable == ["B", "C"]
        assert scheduler.get_status()["B"] == "unreachable"

    def test_missing_dependency_is_unreachable(self):
        tasks = _tasks([{"id": "A", "title": "A", "dependencies": ["ghost"]}])

        async def execute(task):
            raise AssertionError("must not run")

        result = asyncio.run(PhaseScheduler().run_phase(tasks, execute))
        assert result.completed == 0
        assert result.failed == 1
        assert result.rounds == []

    def test_empty_phase(self):
        async def execute(task):
            return True

        result = asyncio.run(PhaseScheduler().run_phase([], execute))
        assert (result.completed, result.failed, result.rounds) == (0, 0, [])

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            PhaseScheduler(max_concurrency=0)


class TestPlanBatches:
    def test_matches_run_rounds(self):
        plan = plan_batches(_chain())
        assert plan.batches == [["A"], ["B"], ["C"]]
        assert plan.unreachable == []
        assert plan.total_tasks == 3
        assert plan.max_parallelism == 1

    def test_reports_unreachable(self):
        tasks = _tasks([
            {"id": "A", "title": "A"},
            {"id": "B", "title": "B"},
            {"id": "C", "title": "C", "dependencies": ["missing"]},
        ])
        plan = PhaseScheduler().plan(tasks)
        assert plan.batches == [["A", "B"]]
        assert plan.unreachable == ["C"]
        assert plan.max_parallelism == 2

    def test_empty(self):
        plan = plan_batches([])
        assert plan.batches == []
        assert plan.max_parallelism == 0
