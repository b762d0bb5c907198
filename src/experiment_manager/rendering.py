"""Rich-backed table rendering for run listings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from rich.console import Console

    from experiment_manager.domain.models import ScoreSummary

__all__ = ["RichTableRenderer", "summary_table"]

_STATUS_STYLES = {
    "COMPLETE": "green",
    "INCOMPLETE": "yellow",
    "FAIL": "red",
    "READY": "dim",
}


class RichTableRenderer:
    """Print rows as a Rich table with a leading positional index column."""

    def __init__(self, console: Console, *, title: str | None = None) -> None:
        """Render onto ``console`` using an optional table ``title``."""
        self._console = console
        self._title = title

    def render(self, rows: Sequence[Mapping[str, Any]]) -> None:
        """Print ``rows``; the index column matches positions used by address tokens."""
        table = Table(title=self._title)
        table.add_column("(index)", justify="right", style="dim")
        columns = list(rows[0].keys()) if rows else []
        for column in columns:
            table.add_column(column, style="bold" if column == "address" else None)
        for index, row in enumerate(rows):
            cells = [_cell(column, row.get(column)) for column in columns]
            table.add_row(str(index), *cells)
        self._console.print(table)


def _cell(column: str, value: Any) -> str:
    text = "" if value is None else str(value)
    style = _STATUS_STYLES.get(text) if column == "status" else None
    if style is None:
        return text
    return f"[{style}]{text}[/{style}]"


def summary_table(summary: ScoreSummary, *, title: str = "Run Outcomes") -> Table:
    """Build a two-column Rich table of outcome counts and accuracy."""
    table = Table(title=title)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Runs", str(summary.total))
    for status, count in summary.by_status.items():
        table.add_row(f"[{_STATUS_STYLES[status]}]{status}[/]", str(count))
    table.add_row("Correct", str(summary.correct))
    table.add_row("Incorrect", str(summary.incorrect))
    table.add_row("Accuracy", "n/a" if summary.accuracy is None else f"{summary.accuracy:.1%}")
    return table
