"""Typer CLI entry points for the experiment manager."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from openai import AsyncOpenAI
from rich.console import Console
import typer

from .agent import ChatQuestionRunner
from .config import LoadError, load_environment, load_settings
from .domain.models import ExperimentSettings, ScoreSummary
from .evaluation import render_markdown_report, summarize_runs
from .loading import build_file_loader
from .orchestration import Experiment
from .rendering import summary_table
from .shell import ExperimentShell
from .storage import StorageError, read_runs

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .agent.chat import AsyncChatClientProtocol

app = typer.Typer(help="Orchestrate batches of resumable, scored LLM runs.")
console = Console()

SOURCES_ARGUMENT = typer.Argument(
    None,
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
    help="Question files or saved run files to load as batches.",
)
QUESTIONS_ARGUMENT = typer.Argument(
    ...,
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
    help="JSON or YAML file with question/answer pairs, or a saved runs file.",
)
RUNS_FILE_ARGUMENT = typer.Argument(
    ...,
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
    help="Saved runs JSON file produced by 'save' or 'xm run'.",
)
SETTINGS_OPTION = typer.Option(
    None,
    "--settings",
    "-s",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="YAML file with experiment settings.",
)
ENV_FILE_OPTION = typer.Option(
    None,
    "--env-file",
    "-e",
    resolve_path=True,
    file_okay=True,
    dir_okay=False,
    help="Optional .env file(s) applied to settings templates and the API client.",
)
OUTPUT_OPTION = typer.Option(
    Path("runs.json"),
    "--output",
    "-o",
    dir_okay=False,
    help="Path where serialized runs should be written.",
)
CONCURRENCY_OPTION = typer.Option(
    None,
    "--concurrency",
    "-n",
    min=1,
    help="Number of runs in flight at once (defaults to the settings value).",
)
BATCH_OPTION = typer.Option(
    None,
    "--batch",
    "-b",
    help="Batch name (defaults to the settings value or the file name).",
)
REPORT_OUTPUT_OPTION = typer.Option(
    Path("report.md"),
    "--output",
    "-o",
    dir_okay=False,
    help="Markdown file to write.",
)
INIT_TARGET_ARGUMENT = typer.Argument(
    Path(),
    file_okay=False,
    resolve_path=True,
    help="Directory that receives the starter files.",
)
INIT_FORCE_OPTION = typer.Option(
    default=False,
    help="Replace starter files that already exist.",
)

SETTINGS_TEMPLATE = """
chat:
  model: ${MODEL_NAME:-gpt-4.1-mini}
  temperature: 0.0
  max_turns: 5
concurrency: 4
batch_name: sample
""".strip()

QUESTIONS_TEMPLATE = """
questions:
  - question: What is the capital of France?
    answer: Paris
  - question: How many sides does a hexagon have?
    answer: "6"
""".strip()

ENV_TEMPLATE = """
# Environment variables consumed by the experiment manager CLI
OPENAI_API_KEY=
OPENAI_BASE_URL=
MODEL_NAME=gpt-4.1-mini
""".strip()

SCAFFOLD_FILES = {
    "settings.yaml": SETTINGS_TEMPLATE,
    "questions.yaml": QUESTIONS_TEMPLATE,
    ".env.example": ENV_TEMPLATE,
}


def _default_client_factory(env: Mapping[str, str]) -> AsyncChatClientProtocol:
    return AsyncOpenAI(
        api_key=env.get("OPENAI_API_KEY") or None,
        base_url=env.get("OPENAI_BASE_URL") or None,
    )


CLIENT_FACTORY: Callable[[Mapping[str, str]], AsyncChatClientProtocol] = _default_client_factory
READ_LINE: Callable[[str], str] = input


def _load_context(
    settings_file: Path | None,
    env_file: Sequence[Path] | None,
) -> tuple[ExperimentSettings, dict[str, str]]:
    env_files = list(env_file) if env_file else None
    try:
        env = load_environment(env_files, base=os.environ)
        settings = load_settings(settings_file, env_files=env_files, overrides=os.environ) if settings_file else ExperimentSettings()
    except LoadError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return settings, env


def _build_experiment(settings: ExperimentSettings, env: Mapping[str, str]) -> Experiment[Any, str]:
    runner = ChatQuestionRunner(CLIENT_FACTORY(env), settings.chat)
    return Experiment(build_file_loader(runner, log=console.print), log=console.print)


async def _load_sources(experiment: Experiment[Any, str], sources: Sequence[Path], batch: str | None) -> None:
    for index, source in enumerate(sources):
        args = (batch,) if batch and index == 0 else ()
        try:
            await experiment.load_from_file(str(source), *args)
        except (LoadError, StorageError, ValueError) as exc:
            raise typer.BadParameter(str(exc)) from exc


def _read_summary(runs_file: Path) -> ScoreSummary:
    try:
        return summarize_runs(read_runs(runs_file))
    except StorageError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _print_summary(summary: ScoreSummary) -> None:
    console.print(summary_table(summary))


@app.command()
def init(target: Path = INIT_TARGET_ARGUMENT, force: bool = INIT_FORCE_OPTION) -> None:
    """Write starter settings, questions and .env files into ``target``."""
    target.mkdir(parents=True, exist_ok=True)
    existing = [target / name for name in SCAFFOLD_FILES if (target / name).exists()]
    if existing and not force:
        for path in existing:
            console.print(f"[yellow]Exists: {path}[/yellow]")
        console.print("[yellow]Nothing written. Use --force to replace existing files.[/yellow]")
        raise typer.Exit(code=1)
    for name, content in SCAFFOLD_FILES.items():
        path = target / name
        path.write_text(content + "\n", encoding="utf-8")
        console.print(f"[green]Wrote {path}[/green]")
    console.print(f"[green]Project scaffolding written to {target}[/green]")


@app.command()
def shell(
    sources: list[Path] | None = SOURCES_ARGUMENT,
    settings_file: Path | None = SETTINGS_OPTION,
    env_file: list[Path] | None = ENV_FILE_OPTION,
    batch: str | None = BATCH_OPTION,
) -> None:
    """Load batches and start the interactive experiment shell."""
    settings, env = _load_context(settings_file, env_file)
    experiment = _build_experiment(settings, env)

    async def serve() -> None:
        await _load_sources(experiment, sources or [], batch or settings.batch_name)
        console.print("[dim]Type 'help' for the list of commands.[/dim]")
        await ExperimentShell(experiment, console=console).run(READ_LINE)

    asyncio.run(serve())


@app.command()
def run(
    questions: Path = QUESTIONS_ARGUMENT,
    output: Path = OUTPUT_OPTION,
    concurrency: int | None = CONCURRENCY_OPTION,
    settings_file: Path | None = SETTINGS_OPTION,
    env_file: list[Path] | None = ENV_FILE_OPTION,
    batch: str | None = BATCH_OPTION,
) -> None:
    """Run every loaded run with bounded concurrency and save the results."""
    settings, env = _load_context(settings_file, env_file)
    experiment = _build_experiment(settings, env)
    limit = concurrency or settings.concurrency

    async def execute() -> None:
        await _load_sources(experiment, [questions], batch or settings.batch_name)
        addresses = [entry.address for entry in experiment.run_list()]
        await experiment.run_n_at_a_time(limit, addresses)

    asyncio.run(execute())
    path = experiment.save_in_one_file(output)
    _print_summary(_read_summary(path))


@app.command()
def summary(runs_file: Path = RUNS_FILE_ARGUMENT) -> None:
    """Print outcome counts for a saved runs file."""
    _print_summary(_read_summary(runs_file))


@app.command()
def report(runs_file: Path = RUNS_FILE_ARGUMENT, output: Path = REPORT_OUTPUT_OPTION) -> None:
    """Generate a Markdown report from a saved runs file."""
    path = render_markdown_report(_read_summary(runs_file), output, source=str(runs_file))
    console.print(f"[green]Report written to {path}[/green]")


def main() -> None:  # pragma: no cover - Typer entry point
    """Invoke the Typer application."""
    app()


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
