"""Interactive command set bound to an experiment."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter
from rich.console import Console
from rich.markup import escape

from experiment_manager.evaluation import summarize_runs
from experiment_manager.orchestration import RunSelector
from experiment_manager.rendering import RichTableRenderer, summary_table

from .commands import Argument, Command, CommandShell

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from experiment_manager.orchestration import Experiment, TableRenderer

__all__ = ["ExperimentShell"]

QUERY = Argument("Query: r:regex, a:address or address range")
OPTIONAL_QUERY = Argument("Query: r:regex, a:address or address range", required=False)
_DETAIL_ADAPTER = TypeAdapter(Any)


class ExperimentShell:
    """Expose experiment operations as shell commands.

    Long-running commands are scheduled as background tasks so the prompt stays
    responsive; their failures are printed once they settle.
    """

    def __init__(
        self,
        experiment: Experiment[Any, Any],
        *,
        console: Console | None = None,
        renderer: TableRenderer | None = None,
    ) -> None:
        """Bind the command set to ``experiment``."""
        self.experiment = experiment
        self.console = console or Console()
        self.selector = RunSelector(experiment, renderer or RichTableRenderer(self.console))
        self.shell = CommandShell(self.console)
        self._tasks: set[asyncio.Task[Any]] = set()
        for command in self._commands():
            self.shell.register(command)

    @property
    def pending_tasks(self) -> frozenset[asyncio.Task[Any]]:
        """Return background tasks that have not settled yet."""
        return frozenset(self._tasks)

    async def run(self, read_line: Callable[[str], str] = input) -> None:
        """Run the read loop; unfinished background work is cancelled on exit."""
        try:
            await self.shell.run(read_line)
        finally:
            for task in list(self._tasks):
                task.cancel()
            await self.wait_idle()

    async def dispatch(self, line: str) -> Any:
        """Execute a single command line."""
        return await self.shell.dispatch(line)

    async def wait_idle(self) -> None:
        """Wait until every background task settled."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _commands(self) -> list[Command]:
        return [
            Command(("list", "ls"), self.list_runs, (OPTIONAL_QUERY,), description="List all runs"),
            Command(("rerun_fails",), self.rerun_fails, description="Rerun all failed runs"),
            Command(
                ("save",),
                self.experiment.save_in_one_file,
                (Argument("Name of file"),),
                description="Save all results from runs in one file",
            ),
            Command(
                ("run_n",),
                self.run_n,
                (Argument("Number of runs to run at a time", int), OPTIONAL_QUERY),
                description="Run n runs at a time",
            ),
            Command(
                ("cancel_run_n",),
                self.cancel_run_n,
                description="Cancel all runs that are scheduled to run",
            ),
            Command(("stop",), self.stop, (QUERY,), rest=QUERY, description="Stop a run"),
            Command(
                ("load",),
                self.experiment.load_from_file,
                (Argument("Path to file"),),
                rest=Argument("Remaining arguments"),
                description="Load from file",
            ),
            Command(("clear_runs",), self.experiment.clear_runs, description="Clear all runs from memory"),
            Command(("detail",), self.detail, (QUERY,), rest=QUERY, description="Get details of a run"),
            Command(("run_one",), self.run_one, (Argument("Address"),), description="Run one run"),
            Command(("status",), self.status, description="Show the share of finished runs"),
            Command(("summary",), self.summary, description="Show outcome counts and accuracy"),
        ]

    def list_runs(self, query: str | None = None) -> None:
        """Refresh and display the run listing."""
        self.selector.list_runs(query)

    def rerun_fails(self) -> None:
        """Schedule a re-run of every failed run."""
        self._spawn(self.experiment.run_fails(), "rerun_fails")

    def run_n(self, n: int, query: str | None = None) -> None:
        """List runs matching ``query`` and run them ``n`` at a time."""
        self.selector.list_runs(query)
        addresses = [entry.address for entry in self.selector.last_list]
        self._spawn(self.experiment.run_n_at_a_time(n, addresses), f"run_n {n}")

    def cancel_run_n(self) -> None:
        """Request cancellation of the active throttled execution."""
        self.experiment.cancel_throttled_runs()
        self.console.print("[yellow]Throttled runs will stop after the current chunk.[/yellow]")

    def stop(self, *queries: str) -> None:
        """Stop every run selected by ``queries``."""
        for address in self.selector.get_run_addresses(queries):
            if self.experiment.stop_run(address):
                self.console.print(f"Stopping {address}")

    def detail(self, *queries: str) -> None:
        """Print the serialized form of every selected run."""
        for address in self.selector.get_run_addresses(queries):
            detail = self.experiment.detail(address)
            if detail is not None:
                self.console.rule(address)
                self.console.print_json(data=_DETAIL_ADAPTER.dump_python(detail, mode="json"))

    def run_one(self, address: str) -> None:
        """Schedule a single run."""
        self._spawn(self.experiment.run_one(address), f"run_one {address}")

    def status(self) -> None:
        """Print the completion percentage."""
        self.console.print(self.experiment.get_status() or "No runs loaded")

    def summary(self) -> None:
        """Print outcome counts over every loaded run."""
        runs = [entry.run.serialized() for batch in self.experiment.batches for entry in batch.runs]
        self.console.print(summary_table(summarize_runs(runs), title="Outcomes"))

    def _spawn(self, coroutine: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._tasks.add(task)

        def _settled(done: asyncio.Task[Any]) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                self.console.print(f"[red]{label} failed: {type(error).__name__}: {escape(str(error))}[/red]")
            else:
                self.console.print(f"[green]{label} finished[/green]")

        task.add_done_callback(_settled)
        return task
