"""Runner implementations backed by LLM chat APIs."""

from .chat import ChatQuestionRunner, extract_answer, normalize_answer

__all__ = ["ChatQuestionRunner", "extract_answer", "normalize_answer"]
