"""Outcome aggregation over serialized runs."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from experiment_manager.domain.models import RunStatus, Score, ScoreSummary, SerializedRun

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


def summarize_runs(runs: Iterable[SerializedRun | Mapping[str, Any]]) -> ScoreSummary:
    """Count statuses and scores; accuracy is CORRECT over scored runs."""
    statuses: Counter[str] = Counter()
    scores: Counter[Score] = Counter()
    for item in runs:
        run = item if isinstance(item, SerializedRun) else SerializedRun.model_validate(item)
        statuses[run.status.value] += 1
        if run.status is RunStatus.COMPLETE and run.score is not None:
            scores[run.score] += 1

    correct = scores[Score.CORRECT]
    incorrect = scores[Score.INCORRECT]
    scored = correct + incorrect
    return ScoreSummary(
        total=sum(statuses.values()),
        by_status={status.value: statuses[status.value] for status in RunStatus},
        correct=correct,
        incorrect=incorrect,
        accuracy=correct / scored if scored else None,
    )
