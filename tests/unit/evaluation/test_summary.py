"""Tests for outcome summaries and Markdown reports."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from experiment_manager.domain.models import RunStatus, SerializedRun
from experiment_manager.evaluation import render_markdown_report, summarize_runs

if TYPE_CHECKING:
    from pathlib import Path


def _runs() -> list[dict[str, object]]:
    return [
        {"data": 1, "status": "COMPLETE", "score": "CORRECT"},
        {"data": 2, "status": "COMPLETE", "score": "INCORRECT"},
        {"data": 3, "status": "COMPLETE", "score": "CORRECT"},
        {"data": 4, "status": "FAIL", "score": "CORRECT"},
        {"data": 5, "status": "READY"},
    ]


def test_summarize_runs_counts_statuses_and_scores() -> None:
    """Only COMPLETE runs contribute to the accuracy."""
    summary = summarize_runs(_runs())

    assert summary.total == 5
    assert summary.by_status == {"READY": 1, "INCOMPLETE": 0, "COMPLETE": 3, "FAIL": 1}
    assert summary.correct == 2
    assert summary.incorrect == 1
    assert summary.accuracy is not None
    assert math.isclose(summary.accuracy, 2 / 3)


def test_summarize_runs_accepts_models_and_handles_no_scores() -> None:
    """Accuracy is undefined when nothing was scored."""
    summary = summarize_runs([SerializedRun(data="x", status=RunStatus.READY)])

    assert summary.total == 1
    assert summary.accuracy is None


def test_render_markdown_report(tmp_path: Path) -> None:
    """The report lists outcomes and per-status counts."""
    output = tmp_path / "reports" / "report.md"

    path = render_markdown_report(summarize_runs(_runs()), output, source="runs.json")

    text = path.read_text(encoding="utf-8")
    assert text.startswith("# Experiment Report")
    assert "Source: `runs.json`" in text
    assert "| Accuracy | 66.7% |" in text
    assert "| FAIL | 1 |" in text


def test_render_markdown_report_without_scores(tmp_path: Path) -> None:
    """Unscored summaries render accuracy as n/a."""
    path = render_markdown_report(summarize_runs([]), tmp_path / "empty.md")

    text = path.read_text(encoding="utf-8")
    assert "| Accuracy | n/a |" in text
    assert "Source:" not in text
