"""Resumable run state machine driven by a pluggable runner."""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Protocol, cast

from experiment_manager.domain.models import RunStatus, Score

if TYPE_CHECKING:
    from collections.abc import Awaitable, Mapping

__all__ = [
    "STEP_TIMEOUT_SECONDS",
    "Run",
    "RunTimeoutError",
    "Runner",
]

STEP_TIMEOUT_SECONDS = 30.0

_STARTABLE = frozenset({RunStatus.READY, RunStatus.FAIL})


class RunTimeoutError(TimeoutError):
    """Raised when a single runner step exceeds the step deadline."""

    def __init__(self, message: str = "Ran out of time") -> None:
        """Initialise the error with the fixed timeout message."""
        super().__init__(message)


class Runner[TaskData, Answer](Protocol):
    """Behaviour injected into a run.

    ``setup`` and ``step`` return ``True`` while the run should keep stepping. A runner
    may also expose ``evaluate(run) -> Score | None``; it is looked up per instance.
    Every hook may return a plain value or an awaitable.
    """

    def setup(self, run: Run[TaskData, Answer]) -> bool | Awaitable[bool]:  # pragma: no cover - protocol method
        """Prepare ``run`` and report whether stepping should begin."""
        ...

    def step(self, run: Run[TaskData, Answer]) -> bool | Awaitable[bool]:  # pragma: no cover - protocol method
        """Advance ``run`` by one turn and report whether to continue."""
        ...


async def _resolve[T](value: T | Awaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await cast("Awaitable[T]", value)
    return value


class Run[TaskData, Answer]:
    """A single unit of multi-turn work with a scored outcome."""

    def __init__(self, runner: Runner[TaskData, Answer], data: TaskData) -> None:
        """Create a READY run for ``data`` driven by ``runner``."""
        self.runner = runner
        self.data = data
        self.context: list[Any] = []
        self.logs: list[Any] = []
        self.status = RunStatus.READY
        self.answer: Answer | None = None
        self.score: Score | None = None
        self._generation = 0
        self._pending: asyncio.Future[Run[TaskData, Answer]] | None = None
        self._driver: asyncio.Task[None] | None = None

    @classmethod
    def from_serialized(
        cls,
        runner: Runner[TaskData, Answer],
        serialized: Mapping[str, Any],
    ) -> Run[TaskData, Answer]:
        """Rebuild a run from the output of :meth:`serialized`."""
        run = cls(runner, serialized["data"])
        run.answer = serialized.get("answer")
        run.context = list(serialized.get("context") or [])
        run.logs = list(serialized.get("logs") or [])
        run.status = RunStatus(serialized["status"])
        score = serialized.get("score")
        run.score = Score(score) if score is not None else None
        return run

    @property
    def in_flight(self) -> bool:
        """Return ``True`` while an execution attempt awaits its outcome."""
        return self._pending is not None and not self._pending.done()

    async def run(self) -> Run[TaskData, Answer]:
        """Execute the run until the runner stops stepping.

        Only READY and FAIL runs start; any other status returns the run unchanged.
        Setup or step failures (including the step deadline) leave the run FAIL and
        are raised to the caller.
        """
        if self.status not in _STARTABLE:
            return self
        if self.status is RunStatus.FAIL:
            self.log("RE RUNNING")
            self.log({"Old Context": list(self.context)})
        loop = asyncio.get_running_loop()
        self._generation += 1
        pending: asyncio.Future[Run[TaskData, Answer]] = loop.create_future()
        self._pending = pending
        self.status = RunStatus.INCOMPLETE
        self._driver = loop.create_task(self._drive(self._generation, pending))
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            self.stop()
            raise

    def stop(self) -> bool:
        """Force the in-flight attempt to resolve as FAIL.

        The runner's current hook is cancelled at its next suspension point and any
        result it still produces is discarded. Returns ``False`` when nothing is running.
        """
        pending = self._pending
        if pending is None or pending.done():
            return False
        self._generation += 1
        self.status = RunStatus.FAIL
        self.log("STOPPED")
        pending.set_result(self)
        if self._driver is not None:
            self._driver.cancel()
        return True

    def log(self, entry: Any) -> None:
        """Append ``entry`` to the diagnostic trail."""
        self.logs.append(entry)

    def serialized(self) -> dict[str, Any]:
        """Return the JSON-compatible persistence projection of the run."""
        return {
            "data": self.data,
            "answer": self.answer,
            "status": self.status.value,
            "context": self.context,
            "score": self.score.value if self.score is not None else None,
            "logs": self.logs,
        }

    async def _drive(self, generation: int, pending: asyncio.Future[Run[TaskData, Answer]]) -> None:
        try:
            proceed = await _resolve(self.runner.setup(self))
            if generation != self._generation:
                return
            self.log("Setup Complete")
            while proceed:
                proceed = await self._step()
                if generation != self._generation:
                    return
            self.status = RunStatus.COMPLETE
            evaluate = getattr(self.runner, "evaluate", None)
            if evaluate is not None:
                score = await _resolve(evaluate(self))
                if generation != self._generation:
                    return
                self.score = score
        except Exception as exc:
            if generation != self._generation:
                return
            self.status = RunStatus.FAIL
            self.log({"error": f"{type(exc).__name__}: {exc}"})
            if not pending.done():
                pending.set_exception(exc)
            return
        if not pending.done():
            pending.set_result(self)

    async def _step(self) -> bool:
        deadline = asyncio.timeout(STEP_TIMEOUT_SECONDS)
        try:
            async with deadline:
                return await _resolve(self.runner.step(self))
        except TimeoutError as exc:
            if not deadline.expired():
                raise
            raise RunTimeoutError from exc
