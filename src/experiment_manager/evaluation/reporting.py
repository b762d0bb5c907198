"""Markdown reports for run outcome summaries."""

from __future__ import annotations

import functools
import pathlib
from typing import TYPE_CHECKING

from jinja2 import Environment, PackageLoader, StrictUndefined

if TYPE_CHECKING:
    from experiment_manager.domain.models import ScoreSummary

REPORT_TEMPLATE = "report.md.j2"


def _percent(value: float | None, digits: int = 1) -> str:
    if value is None:
        return "n/a"
    return f"{value * 100:.{digits}f}%"


@functools.cache
def _environment() -> Environment:
    env = Environment(
        loader=PackageLoader("experiment_manager.evaluation", "templates"),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["percent"] = _percent
    return env


def render_markdown_report(
    summary: ScoreSummary,
    output_path: pathlib.Path | str,
    *,
    source: str | None = None,
) -> pathlib.Path:
    """Write the Markdown report for ``summary``; ``source`` names the runs file."""
    shares = {
        status: (count / summary.total if summary.total else None)
        for status, count in summary.by_status.items()
    }
    content = _environment().get_template(REPORT_TEMPLATE).render(
        summary=summary,
        shares=shares,
        source=source,
    )
    path = pathlib.Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
