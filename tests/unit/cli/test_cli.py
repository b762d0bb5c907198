"""Tests for the `xm` command line interface."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import pytest
from typer.testing import CliRunner

from experiment_manager import cli
from experiment_manager.cli import app

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


runner = CliRunner()


class _StubCompletions:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls = 0

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls += 1
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None)


def _stub_factory(reply: str, seen_env: list[Mapping[str, str]]) -> Any:
    def factory(env: Mapping[str, str]) -> Any:
        seen_env.append(env)
        return SimpleNamespace(chat=SimpleNamespace(completions=_StubCompletions(reply)))

    return factory


def _questions(tmp_path: Path) -> Path:
    path = tmp_path / "questions.yaml"
    path.write_text(
        "- question: Capital of France?\n  answer: Paris\n- question: Sides of a hexagon?\n  answer: '6'\n",
        encoding="utf-8",
    )
    return path


def _saved_runs(tmp_path: Path) -> Path:
    path = tmp_path / "runs.json"
    payload = [
        {"data": 1, "status": "COMPLETE", "score": "CORRECT"},
        {"data": 2, "status": "COMPLETE", "score": "INCORRECT"},
        {"data": 3, "status": "FAIL"},
    ]
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_init_writes_starter_files_and_protects_existing_ones(tmp_path: Path) -> None:
    """Init refuses to touch existing starter files unless --force is given."""
    first = runner.invoke(app, ["init", str(tmp_path)], catch_exceptions=False)

    assert first.exit_code == 0
    assert sorted(path.name for path in tmp_path.iterdir()) == [".env.example", "questions.yaml", "settings.yaml"]
    settings_file = tmp_path / "settings.yaml"
    settings_file.write_text("concurrency: 1\n", encoding="utf-8")

    refused = runner.invoke(app, ["init", str(tmp_path)], catch_exceptions=False)
    assert refused.exit_code == 1
    assert "Use --force" in refused.stdout
    assert settings_file.read_text(encoding="utf-8") == "concurrency: 1\n"

    forced = runner.invoke(app, ["init", str(tmp_path), "--force"], catch_exceptions=False)
    assert forced.exit_code == 0
    assert "batch_name: sample" in settings_file.read_text(encoding="utf-8")


def test_summary_prints_outcomes(tmp_path: Path) -> None:
    """The summary command tabulates statuses and accuracy."""
    result = runner.invoke(app, ["summary", str(_saved_runs(tmp_path))], catch_exceptions=False)

    assert result.exit_code == 0
    assert "Run Outcomes" in result.stdout
    assert "50.0%" in result.stdout


def test_summary_rejects_invalid_runs_file(tmp_path: Path) -> None:
    """Files that are not saved runs are reported as bad parameters."""
    broken = tmp_path / "broken.json"
    broken.write_text('[{"status": "DONE"}]', encoding="utf-8")

    result = runner.invoke(app, ["summary", str(broken)])

    assert result.exit_code == 2
    assert "Invalid runs file" in result.output


def test_report_writes_markdown(tmp_path: Path) -> None:
    """The report command renders the Markdown report."""
    output = tmp_path / "out" / "report.md"

    result = runner.invoke(
        app,
        ["report", str(_saved_runs(tmp_path)), "--output", str(output)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0
    text = output.read_text(encoding="utf-8")
    assert "# Experiment Report" in text
    assert "| Accuracy | 50.0% |" in text


def test_run_executes_questions_and_saves_results(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """The run command drives every question through the chat runner."""
    seen_env: list[Mapping[str, str]] = []
    monkeypatch.setattr(cli, "CLIENT_FACTORY", _stub_factory("ANSWER: Paris", seen_env))
    env_file = tmp_path / "test.env"
    env_file.write_text("OPENAI_API_KEY=sk-test\n", encoding="utf-8")
    output = tmp_path / "results.json"

    result = runner.invoke(
        app,
        [
            "run",
            str(_questions(tmp_path)),
            "--output",
            str(output),
            "--concurrency",
            "1",
            "--env-file",
            str(env_file),
            "--batch",
            "capitals",
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0
    assert seen_env[0]["OPENAI_API_KEY"] == "sk-test"
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert [item["status"] for item in payload] == ["COMPLETE", "COMPLETE"]
    assert [item["score"] for item in payload] == ["CORRECT", "INCORRECT"]
    assert "50.0%" in result.stdout


def test_run_uses_settings_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Settings control the batch name when no option overrides it."""
    monkeypatch.setattr(cli, "CLIENT_FACTORY", _stub_factory("ANSWER: 6", []))
    settings = tmp_path / "settings.yaml"
    settings.write_text("concurrency: 2\nbatch_name: from-settings\n", encoding="utf-8")
    output = tmp_path / "results.json"

    result = runner.invoke(
        app,
        ["run", str(_questions(tmp_path)), "--output", str(output), "--settings", str(settings)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0
    assert "batch 'from-settings'" in result.stdout
    assert [item["score"] for item in json.loads(output.read_text(encoding="utf-8"))] == [
        "INCORRECT",
        "CORRECT",
    ]


def test_shell_loads_sources_and_reads_commands(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """The shell command loads files as batches and dispatches typed lines."""
    monkeypatch.setattr(cli, "CLIENT_FACTORY", _stub_factory("ANSWER: Paris", []))
    lines = ["ls", "status", "exit"]

    def read_line(prompt: str) -> str:
        return lines.pop(0)

    monkeypatch.setattr(cli, "READ_LINE", read_line)

    result = runner.invoke(app, ["shell", str(_questions(tmp_path))], catch_exceptions=False)

    assert result.exit_code == 0
    assert "Loaded 2 runs into batch 'questions'" in result.stdout
    assert "questions:1" in result.stdout
    assert "0% Complete" in result.stdout
