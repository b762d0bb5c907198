"""Experiment-level orchestration across batches of runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import math
from typing import TYPE_CHECKING, Any

from experiment_manager.domain.models import RunStatus
from experiment_manager.storage import write_runs

from .addressing import ADDRESS_SEPARATOR, ListingEntry, format_address

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from pathlib import Path

    from .batch import Batch, BatchEntry
    from .run import Run

    type ExperimentLoader = Callable[..., Awaitable[None] | None]

__all__ = ["DuplicateBatchError", "Experiment", "ResolvedAddress"]


class DuplicateBatchError(ValueError):
    """Raised when a batch name is already registered on the experiment."""


@dataclass(frozen=True, slots=True)
class ResolvedAddress[TaskData, Answer]:
    """Batch and entry an address points at."""

    batch: Batch[TaskData, Answer]
    entry: BatchEntry[TaskData, Answer]

    @property
    def run(self) -> Run[TaskData, Answer]:
        """Return the addressed run."""
        return self.entry.run


class Experiment[TaskData, Answer]:
    """Owner of batches providing addressing, bulk execution and persistence."""

    def __init__(
        self,
        loader: ExperimentLoader | None = None,
        *,
        log: Callable[[str], None] | None = None,
    ) -> None:
        """Create an empty experiment.

        ``loader`` is called as ``loader(experiment, path, *args)`` by
        :meth:`load_from_file`; ``log`` receives Rich-markup progress messages.
        """
        self.batches: list[Batch[TaskData, Answer]] = []
        self.complete = False
        self.log = log
        self._loader = loader
        self._running_n = False
        self._cancel_throttled = False

    @property
    def running_throttled(self) -> bool:
        """Return ``True`` while :meth:`run_n_at_a_time` is active."""
        return self._running_n

    def add_batch(self, batch: Batch[TaskData, Answer]) -> None:
        """Attach ``batch`` and point its experiment reference here."""
        if any(existing.name == batch.name for existing in self.batches):
            message = f"Batch '{batch.name}' is already registered"
            raise DuplicateBatchError(message)
        if ADDRESS_SEPARATOR in batch.name:
            message = f"Batch name '{batch.name}' must not contain '{ADDRESS_SEPARATOR}'"
            raise ValueError(message)
        batch.experiment = self
        self.batches.append(batch)

    def clear_runs(self) -> None:
        """Detach every batch."""
        self.batches = []

    def clear_run(self, addr: str) -> None:
        """Detach the run at ``addr``; unknown addresses are ignored."""
        resolved = self.addr_to_batch_and_run(addr)
        if resolved is None:
            return
        resolved.batch.clear_run(resolved.entry.id)
        self._emit(f"Cleared {addr}")

    async def load_from_file(self, name: str, *args: str) -> None:
        """Populate the experiment from ``name`` through the configured loader."""
        if self._loader is None:
            message = "No loader configured for this experiment"
            raise RuntimeError(message)
        result = self._loader(self, name, *args)
        if inspect.isawaitable(result):
            await result

    async def run_one(self, addr: str) -> Run[TaskData, Answer] | None:
        """Run the single run at ``addr``."""
        resolved = self.addr_to_batch_and_run(addr)
        if resolved is None:
            return None
        self._emit(f"Running {addr}")
        return await resolved.batch.run_and_notify(resolved.run)

    async def run_all_batches(self) -> list[Run[TaskData, Answer] | BaseException]:
        """Run every batch concurrently without a concurrency ceiling."""
        results = await asyncio.gather(*(batch.run_all() for batch in self.batches))
        return [item for batch_results in results for item in batch_results]

    async def run_fails(self) -> list[Run[TaskData, Answer] | BaseException]:
        """Re-run every FAIL run across all batches."""
        results = await asyncio.gather(*(batch.run_fails() for batch in self.batches))
        return [item for batch_results in results for item in batch_results]

    async def run_n_at_a_time(
        self,
        n: int,
        addresses: Sequence[str],
    ) -> list[Run[TaskData, Answer] | BaseException]:
        """Run ``addresses`` in consecutive chunks of at most ``n`` concurrent runs.

        A chunk starts only after every run of the previous chunk settled. Only one
        throttled execution may be active; further calls return immediately. A
        cancellation request is honoured between chunks.
        """
        if n < 1:
            message = f"Concurrency must be at least 1, got {n}"
            raise ValueError(message)
        if self._running_n:
            self._emit("[yellow]A throttled run is already in progress.[/yellow]")
            return []
        self._running_n = True
        self._cancel_throttled = False
        settled: list[Run[TaskData, Answer] | BaseException] = []
        try:
            targets = [
                resolved
                for resolved in map(self.addr_to_batch_and_run, addresses)
                if resolved is not None
            ]
            chunks = [targets[start : start + n] for start in range(0, len(targets), n)]
            for index, chunk in enumerate(chunks, start=1):
                self._emit(f"[dim]Starting chunk {index}/{len(chunks)} ({len(chunk)} runs)[/dim]")
                settled.extend(
                    await asyncio.gather(
                        *(resolved.batch.run_and_notify(resolved.run) for resolved in chunk),
                        return_exceptions=True,
                    ),
                )
                if self._cancel_throttled:
                    self._cancel_throttled = False
                    remaining = len(chunks) - index
                    self._emit(f"[yellow]Throttled runs cancelled; {remaining} chunk(s) skipped.[/yellow]")
                    break
        finally:
            self._running_n = False
        return settled

    def cancel_throttled_runs(self) -> None:
        """Ask the active throttled execution to stop after its current chunk."""
        self._cancel_throttled = True

    def save_in_one_file(self, name: str | Path) -> Path:
        """Write every run, batch by batch, into a single JSON array at ``name``."""
        runs = [entry.run.serialized() for batch in self.batches for entry in batch.runs]
        path = write_runs(name, runs)
        self._emit(f"[green]Saved {len(runs)} runs to {path}[/green]")
        return path

    def run_list(self) -> list[ListingEntry]:
        """Return address/status pairs for every run in batch-then-id order."""
        return [
            ListingEntry(address=format_address(batch.name, entry.id), status=entry.run.status.value)
            for batch in self.batches
            for entry in batch.runs
        ]

    def on_run_complete(self) -> None:
        """Recompute the informational ``complete`` flag."""
        self.complete = not any(batch.active_runs() for batch in self.batches)

    def get_status(self) -> str:
        """Return the share of runs in a terminal status, e.g. ``"25% Complete"``."""
        total = sum(len(batch.runs) for batch in self.batches)
        if total == 0:
            return ""
        unfinished = sum(len(batch.incomplete_runs()) for batch in self.batches)
        percent = math.floor(100 * (total - unfinished) / total + 0.5)
        return f"{percent}% Complete"

    def status_counts(self) -> dict[str, int]:
        """Return the number of runs per status."""
        counts = {status.value: 0 for status in RunStatus}
        for batch in self.batches:
            for entry in batch.runs:
                counts[entry.run.status.value] += 1
        return counts

    def addr_to_batch_and_run(self, addr: str) -> ResolvedAddress[TaskData, Answer] | None:
        """Resolve ``batch:id``; malformed or unknown addresses yield ``None``."""
        batch_name, separator, raw_id = addr.partition(ADDRESS_SEPARATOR)
        if not separator:
            return None
        batch = next((candidate for candidate in self.batches if candidate.name == batch_name), None)
        if batch is None:
            return None
        try:
            run_id = int(raw_id)
        except ValueError:
            return None
        entry = batch.get_run(run_id)
        if entry is None:
            return None
        return ResolvedAddress(batch=batch, entry=entry)

    def stop_run(self, addr: str) -> bool:
        """Stop the run at ``addr``; return ``False`` when it cannot be resolved."""
        resolved = self.addr_to_batch_and_run(addr)
        if resolved is None:
            return False
        resolved.batch.cancel_run(resolved.entry.id)
        return True

    def detail(self, addr: str) -> dict[str, Any] | None:
        """Return the serialized run at ``addr``."""
        resolved = self.addr_to_batch_and_run(addr)
        if resolved is None:
            return None
        return resolved.run.serialized()

    def _emit(self, message: str) -> None:
        if self.log is not None:
            self.log(message)
