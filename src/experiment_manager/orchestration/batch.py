"""Named, ordered collections of addressable runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING
import weakref

from experiment_manager.domain.models import RunStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .experiment import Experiment
    from .run import Run

__all__ = ["Batch", "BatchEntry"]


@dataclass(slots=True)
class BatchEntry[TaskData, Answer]:
    """A run paired with its stable per-batch id."""

    id: int
    run: Run[TaskData, Answer]


class Batch[TaskData, Answer]:
    """Named collection of runs with ids that are never reused."""

    def __init__(self, name: str, runs: Iterable[Run[TaskData, Answer]] = ()) -> None:
        """Create batch ``name`` holding ``runs`` in order."""
        self.name = name
        self._id_counter = 0
        self._experiment: weakref.ref[Experiment[TaskData, Answer]] | None = None
        self.runs: list[BatchEntry[TaskData, Answer]] = [
            BatchEntry(id=self._next_id(), run=run) for run in runs
        ]

    @property
    def experiment(self) -> Experiment[TaskData, Answer] | None:
        """Return the owning experiment while it is alive."""
        if self._experiment is None:
            return None
        return self._experiment()

    @experiment.setter
    def experiment(self, experiment: Experiment[TaskData, Answer] | None) -> None:
        self._experiment = weakref.ref(experiment) if experiment is not None else None

    def _next_id(self) -> int:
        run_id = self._id_counter
        self._id_counter += 1
        return run_id

    def get_run(self, run_id: int) -> BatchEntry[TaskData, Answer] | None:
        """Return the entry registered under ``run_id``."""
        return next((entry for entry in self.runs if entry.id == run_id), None)

    def active_runs(self) -> list[BatchEntry[TaskData, Answer]]:
        """Return entries currently executing."""
        return [entry for entry in self.runs if entry.run.status is RunStatus.INCOMPLETE]

    def incomplete_runs(self) -> list[BatchEntry[TaskData, Answer]]:
        """Return entries that have not reached a terminal status."""
        return [
            entry
            for entry in self.runs
            if entry.run.status in (RunStatus.INCOMPLETE, RunStatus.READY)
        ]

    def cancel_run(self, run_id: int) -> None:
        """Stop every run registered under ``run_id``."""
        for entry in self.runs:
            if entry.id == run_id:
                entry.run.stop()

    def clear_run(self, run_id: int) -> None:
        """Detach ``run_id`` from the batch without touching the run itself."""
        self.runs = [entry for entry in self.runs if entry.id != run_id]

    async def run_all(self) -> list[Run[TaskData, Answer] | BaseException]:
        """Start every run at once and wait for all of them to settle."""
        return await asyncio.gather(
            *(self.run_and_notify(entry.run) for entry in self.runs),
            return_exceptions=True,
        )

    async def run_fails(self) -> list[Run[TaskData, Answer] | BaseException]:
        """Re-run FAIL runs concurrently; other runs are returned untouched."""

        async def settled(run: Run[TaskData, Answer]) -> Run[TaskData, Answer]:
            return run

        return await asyncio.gather(
            *(
                self.run_and_notify(entry.run)
                if entry.run.status is RunStatus.FAIL
                else settled(entry.run)
                for entry in self.runs
            ),
            return_exceptions=True,
        )

    async def run_and_notify(self, run: Run[TaskData, Answer]) -> Run[TaskData, Answer]:
        """Run ``run`` and notify the owning experiment once it settles."""
        try:
            return await run.run()
        finally:
            experiment = self.experiment
            if experiment is not None:
                experiment.on_run_complete()
