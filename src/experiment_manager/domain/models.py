"""Pydantic domain models for the experiment manager."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PROMPT = (
    "You are answering a question step by step. Think out loud if it helps, and when "
    "you are confident reply with a final line of the form 'ANSWER: <answer>'."
)


class RunStatus(str, Enum):
    """Lifecycle states of a run."""

    READY = "READY"
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"
    FAIL = "FAIL"


class Score(str, Enum):
    """Outcome assigned by a runner's optional evaluation hook."""

    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"


class Question(BaseModel):
    """Single question/expected-answer pair used as run input."""

    question: str
    answer: str


class SerializedRun(BaseModel):
    """Persistence shape of a run."""

    data: Any
    answer: Any = None
    status: RunStatus
    context: list[Any] = Field(default_factory=list)
    score: Score | None = None
    logs: list[Any] = Field(default_factory=list)


class ChatSettings(BaseModel):
    """Configuration for the chat model driving each run."""

    model: str = "gpt-4.1-mini"
    temperature: float = 0.0
    max_turns: int = Field(default=5, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class ExperimentSettings(BaseModel):
    """Root document of an experiment settings file."""

    chat: ChatSettings = Field(default_factory=ChatSettings)
    concurrency: int = Field(default=4, ge=1)
    batch_name: str | None = None


class ScoreSummary(BaseModel):
    """Aggregated outcome counts for a set of runs."""

    total: int
    by_status: dict[str, int]
    correct: int
    incorrect: int
    accuracy: float | None = None
