"""Question-answering runner driving an OpenAI-compatible chat client."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Protocol, cast

from experiment_manager.domain.models import ChatSettings, Question, Score

if TYPE_CHECKING:
    from experiment_manager.orchestration.run import Run

__all__ = ["ChatQuestionRunner", "extract_answer", "normalize_answer"]

_ANSWER_PATTERN = re.compile(r"^\s*ANSWER:\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_TRAILING_PUNCTUATION = ".!?;,"
NUDGE_PROMPT = "Continue. When you are confident, reply with a final line 'ANSWER: <answer>'."


class ChatCompletionsProtocol(Protocol):
    """Typed subset of the async chat completions API."""

    async def create(self, **kwargs: Any) -> Any:  # pragma: no cover - protocol method
        """Create a chat completion."""
        ...


class AsyncChatClientProtocol(Protocol):
    """Minimal client protocol exposing ``chat.completions``."""

    @property
    def chat(self) -> Any:  # pragma: no cover - protocol method
        """Return the chat API namespace."""
        ...


def extract_answer(text: str) -> str | None:
    """Return the last ``ANSWER:`` line in ``text``."""
    matches = _ANSWER_PATTERN.findall(text)
    if not matches:
        return None
    return matches[-1]


def normalize_answer(answer: str) -> str:
    """Casefold, collapse whitespace and drop trailing punctuation."""
    collapsed = " ".join(answer.split()).casefold()
    return collapsed.rstrip(_TRAILING_PUNCTUATION).strip()


class ChatQuestionRunner:
    """Ask a question over several chat turns until the model commits to an answer."""

    def __init__(self, client: AsyncChatClientProtocol, settings: ChatSettings | None = None) -> None:
        """Store the chat client and model settings shared by every run."""
        self._client = client
        self._settings = settings or ChatSettings()

    @property
    def settings(self) -> ChatSettings:
        """Return the chat settings used for each request."""
        return self._settings

    def setup(self, run: Run[Any, str]) -> bool:
        """Seed the transcript for a fresh run; resumed runs keep their context."""
        if not run.context:
            question = Question.model_validate(run.data)
            run.context.append({"role": "system", "content": self._settings.system_prompt})
            run.context.append({"role": "user", "content": question.question})
        return True

    async def step(self, run: Run[Any, str]) -> bool:
        """Send the transcript and record the reply; return ``False`` once answered."""
        completions = cast("ChatCompletionsProtocol", self._client.chat.completions)
        response = await completions.create(
            model=self._settings.model,
            messages=list(run.context),
            temperature=self._settings.temperature,
        )
        content = response.choices[0].message.content or ""
        run.context.append({"role": "assistant", "content": content})
        usage = getattr(response, "usage", None)
        if usage is not None:
            run.log({"total_tokens": getattr(usage, "total_tokens", None)})

        answer = extract_answer(content)
        if answer is not None:
            run.answer = answer
            return False
        if _assistant_turns(run.context) >= self._settings.max_turns:
            run.log(f"No answer after {self._settings.max_turns} turns")
            return False
        run.context.append({"role": "user", "content": NUDGE_PROMPT})
        return True

    def evaluate(self, run: Run[Any, str]) -> Score:
        """Compare the recorded answer with the expected one."""
        if run.answer is None:
            return Score.INCORRECT
        expected = Question.model_validate(run.data).answer
        if normalize_answer(run.answer) == normalize_answer(expected):
            return Score.CORRECT
        return Score.INCORRECT


def _assistant_turns(context: list[Any]) -> int:
    return sum(1 for message in context if isinstance(message, dict) and message.get("role") == "assistant")
