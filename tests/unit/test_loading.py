"""Tests for populating experiments from question and runs files."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import pytest

from experiment_manager.config import LoadError
from experiment_manager.domain.models import Question, RunStatus, Score
from experiment_manager.loading import build_file_loader, is_saved_runs_file, runs_from_file
from experiment_manager.orchestration import DuplicateBatchError, Experiment, Run

if TYPE_CHECKING:
    from pathlib import Path


class NullRunner:
    def setup(self, run: Run[Any, Any]) -> bool:  # pragma: no cover - runs are never started
        return False

    def step(self, run: Run[Any, Any]) -> bool:  # pragma: no cover - runs are never started
        return False


def _questions_file(tmp_path: Path) -> Path:
    path = tmp_path / "capitals.yaml"
    path.write_text(
        "questions:\n  - question: France?\n    answer: Paris\n  - question: Italy?\n    answer: Rome\n",
        encoding="utf-8",
    )
    return path


def _runs_file(tmp_path: Path) -> Path:
    path = tmp_path / "previous.json"
    payload = [
        {
            "data": {"question": "France?", "answer": "Paris"},
            "answer": "Paris",
            "status": "COMPLETE",
            "context": ["turn"],
            "score": "CORRECT",
            "logs": ["Setup Complete"],
        },
        {"data": {"question": "Italy?", "answer": "Rome"}, "status": "FAIL", "logs": ["STOPPED"]},
    ]
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_is_saved_runs_file(tmp_path: Path) -> None:
    """Only JSON arrays of status-bearing objects count as saved runs."""
    questions_json = tmp_path / "questions.json"
    questions_json.write_text('[{"question": "q", "answer": "a"}]', encoding="utf-8")
    empty = tmp_path / "empty.json"
    empty.write_text("[]", encoding="utf-8")

    assert is_saved_runs_file(_runs_file(tmp_path)) is True
    assert is_saved_runs_file(questions_json) is False
    assert is_saved_runs_file(empty) is False
    assert is_saved_runs_file(_questions_file(tmp_path)) is False


def test_runs_from_questions_are_ready(tmp_path: Path) -> None:
    """Question files produce READY runs carrying the question as data."""
    runs = runs_from_file(NullRunner(), _questions_file(tmp_path))

    assert [run.status for run in runs] == [RunStatus.READY, RunStatus.READY]
    assert runs[1].data == Question(question="Italy?", answer="Rome")


def test_runs_from_saved_file_restore_state(tmp_path: Path) -> None:
    """Saved runs come back with their status, score and history."""
    runs = runs_from_file(NullRunner(), _runs_file(tmp_path))

    assert [run.status for run in runs] == [RunStatus.COMPLETE, RunStatus.FAIL]
    assert runs[0].score is Score.CORRECT
    assert runs[0].context == ["turn"]
    assert runs[1].logs == ["STOPPED"]
    assert runs[1].data == {"question": "Italy?", "answer": "Rome"}


def test_file_loader_adds_named_batches(tmp_path: Path) -> None:
    """Each load adds one batch named by argument or file stem."""
    messages: list[str] = []
    experiment: Experiment[Any, Any] = Experiment(build_file_loader(NullRunner(), log=messages.append))

    asyncio.run(experiment.load_from_file(str(_questions_file(tmp_path))))
    asyncio.run(experiment.load_from_file(str(_runs_file(tmp_path)), "resumed"))

    assert [batch.name for batch in experiment.batches] == ["capitals", "resumed"]
    assert [entry.address for entry in experiment.run_list()] == [
        "capitals:0",
        "capitals:1",
        "resumed:0",
        "resumed:1",
    ]
    assert any("Loaded 2 runs into batch 'resumed'" in message for message in messages)

    with pytest.raises(DuplicateBatchError):
        asyncio.run(experiment.load_from_file(str(_questions_file(tmp_path))))


def test_missing_json_file_is_a_load_error(tmp_path: Path) -> None:
    """A missing JSON path is not saved runs and fails like any missing questions file."""
    missing = tmp_path / "missing.json"

    assert is_saved_runs_file(missing) is False
    with pytest.raises(LoadError, match="not found"):
        runs_from_file(NullRunner(), missing)
