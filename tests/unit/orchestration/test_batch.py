"""Tests for batches of runs."""

from __future__ import annotations

import asyncio
import gc
from typing import Any

from experiment_manager.domain.models import RunStatus
from experiment_manager.orchestration import Batch, Experiment, Run


class EchoRunner:
    """Runner finishing after one step; data ``"boom"`` fails the step."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.started: list[Any] = []

    def setup(self, run: Run[Any, Any]) -> bool:
        self.started.append(run.data)
        return True

    async def step(self, run: Run[Any, Any]) -> bool:
        await asyncio.sleep(self.delay)
        if run.data == "boom":
            message = "boom"
            raise RuntimeError(message)
        run.answer = run.data
        return False


def _batch(runner: EchoRunner, *items: Any, name: str = "b") -> Batch[Any, Any]:
    return Batch(name, [Run(runner, item) for item in items])


def test_batch_assigns_sequential_ids() -> None:
    """Runs receive ids 0..n-1 in insertion order."""
    batch = _batch(EchoRunner(), "x", "y", "z")

    assert [entry.id for entry in batch.runs] == [0, 1, 2]
    entry = batch.get_run(1)
    assert entry is not None
    assert entry.run.data == "y"
    assert batch.get_run(7) is None


def test_clear_run_detaches_entry_and_keeps_other_ids() -> None:
    """Clearing a run removes it while the remaining ids stay stable."""
    batch = _batch(EchoRunner(), "x", "y", "z")

    batch.clear_run(1)

    assert [entry.id for entry in batch.runs] == [0, 2]
    assert batch.get_run(1) is None


def test_run_all_settles_every_run_and_notifies_experiment() -> None:
    """All runs start together; failures are returned instead of raised."""
    runner = EchoRunner()
    batch = _batch(runner, "x", "boom", "z")
    experiment: Experiment[Any, Any] = Experiment()
    experiment.add_batch(batch)

    results = asyncio.run(batch.run_all())

    assert results[0] is batch.runs[0].run
    assert isinstance(results[1], RuntimeError)
    assert [entry.run.status for entry in batch.runs] == [
        RunStatus.COMPLETE,
        RunStatus.FAIL,
        RunStatus.COMPLETE,
    ]
    assert experiment.complete is True
    assert batch.active_runs() == []
    assert batch.incomplete_runs() == []


def test_run_fails_only_restarts_failed_runs() -> None:
    """Only FAIL runs are executed again."""
    runner = EchoRunner()
    batch = _batch(runner, "x", "y")
    batch.runs[0].run.status = RunStatus.COMPLETE
    batch.runs[1].run.status = RunStatus.FAIL

    results = asyncio.run(batch.run_fails())

    assert runner.started == ["y"]
    assert results == [batch.runs[0].run, batch.runs[1].run]
    assert batch.runs[1].run.status is RunStatus.COMPLETE
    assert "RE RUNNING" in batch.runs[1].run.logs


def test_cancel_run_stops_the_addressed_run() -> None:
    """Cancelling by id stops the in-flight run."""
    batch = _batch(EchoRunner(delay=10.0), "x", "y")

    async def scenario() -> list[Any]:
        task = asyncio.create_task(batch.run_all())
        while not all(entry.run.in_flight for entry in batch.runs):
            await asyncio.sleep(0)
        batch.cancel_run(0)
        assert batch.runs[0].run.status is RunStatus.FAIL
        assert [entry.id for entry in batch.active_runs()] == [1]
        batch.cancel_run(1)
        return await task

    results = asyncio.run(scenario())

    assert all(result.status is RunStatus.FAIL for result in results)


def test_batch_does_not_keep_experiment_alive() -> None:
    """The back-reference to the owning experiment is weak."""
    batch = _batch(EchoRunner(), "x")
    experiment: Experiment[Any, Any] = Experiment()
    experiment.add_batch(batch)
    assert batch.experiment is experiment

    del experiment
    gc.collect()

    assert batch.experiment is None
