"""Single-file JSON persistence for serialized runs."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from experiment_manager.domain.models import SerializedRun

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

__all__ = ["StorageError", "read_runs", "write_runs"]

_RUNS_ADAPTER = TypeAdapter(list[SerializedRun])
_RAW_ADAPTER = TypeAdapter(list[Any])


class StorageError(RuntimeError):
    """Raised when a runs file does not match the serialized run shape."""


def write_runs(path: str | Path, runs: Iterable[Mapping[str, Any]]) -> Path:
    """Write ``runs`` to ``path`` as one indented JSON array and return the path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = _RAW_ADAPTER.dump_json(list(runs), indent=4)
    target.write_bytes(payload)
    return target


def read_runs(path: str | Path) -> list[SerializedRun]:
    """Load serialized runs previously written by :func:`write_runs`."""
    source = Path(path)
    try:
        payload = source.read_bytes()
    except OSError as exc:
        message = f"Failed to read runs file: {source}"
        raise StorageError(message) from exc
    try:
        return _RUNS_ADAPTER.validate_json(payload)
    except ValidationError as exc:
        message = f"Invalid runs file {source}: {exc.error_count()} validation error(s)"
        raise StorageError(message) from exc
