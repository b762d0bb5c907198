"""Evaluation helpers for experiment outcomes."""

from .reporting import render_markdown_report
from .summary import summarize_runs

__all__ = ["render_markdown_report", "summarize_runs"]
