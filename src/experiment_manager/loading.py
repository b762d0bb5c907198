"""Loaders that populate an experiment from questions or saved runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from experiment_manager.config import load_questions
from experiment_manager.orchestration import Batch, Run
from experiment_manager.storage import read_runs

if TYPE_CHECKING:
    from collections.abc import Callable

    from experiment_manager.orchestration import Experiment, Runner

__all__ = ["build_file_loader", "is_saved_runs_file", "runs_from_file"]


def is_saved_runs_file(path: Path) -> bool:
    """Return ``True`` when ``path`` holds a JSON array of serialized runs."""
    if path.suffix.lower() != ".json":
        return False
    try:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    if not isinstance(payload, list) or not payload:
        return False
    items = cast("list[Any]", payload)
    return all(isinstance(item, dict) and "status" in item for item in items)


def runs_from_file(runner: Runner[Any, Any], path: str | Path) -> list[Run[Any, Any]]:
    """Build runs from a saved-runs file (status restored) or a questions file (READY)."""
    source = Path(path)
    if is_saved_runs_file(source):
        return [Run.from_serialized(runner, item.model_dump(mode="json")) for item in read_runs(source)]
    return [Run(runner, question) for question in load_questions(source)]


def build_file_loader(
    runner: Runner[Any, Any],
    *,
    log: Callable[[str], None] | None = None,
) -> Callable[..., None]:
    """Return an ``Experiment`` loader adding one batch per loaded file.

    The batch is named after the first extra argument, or the file stem.
    """

    def load(experiment: Experiment[Any, Any], path: str, *args: str) -> None:
        source = Path(path)
        name = args[0] if args else source.stem
        runs = runs_from_file(runner, source)
        experiment.add_batch(Batch(name, runs))
        if log is not None:
            log(f"[green]Loaded {len(runs)} runs into batch '{name}'[/green]")

    return load
