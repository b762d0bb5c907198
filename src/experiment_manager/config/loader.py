"""Load experiment settings, question sets and ``.env`` values from disk."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
import re
from typing import TYPE_CHECKING, Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, ValidationError
import yaml

from experiment_manager.domain.models import ExperimentSettings, Question

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

__all__ = [
    "LoadError",
    "LoadResult",
    "load_environment",
    "load_questions",
    "load_settings",
]

_PLACEHOLDER = re.compile(r"\$\{(?P<key>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")
_QUESTIONS_KEY = "questions"


class LoadError(RuntimeError):
    """Raised when settings, questions or environment files cannot be loaded."""


@dataclass(frozen=True, slots=True)
class LoadResult[T: BaseModel]:
    """Validated items together with the file they came from."""

    items: tuple[T, ...]
    source: Path

    def __iter__(self) -> Iterator[T]:
        """Iterate over the loaded items."""
        return iter(self.items)

    def __len__(self) -> int:
        """Return the number of loaded items."""
        return len(self.items)


def load_environment(
    env_files: Sequence[str | Path] | None = None,
    *,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge ``base`` with ``.env`` files; later files win and empty keys are skipped."""
    merged = dict(base or {})
    for env_file in env_files or ():
        path = Path(env_file)
        if not path.is_file():
            message = f"Environment file not found: {path}"
            raise LoadError(message)
        for key, value in dotenv_values(path, encoding="utf-8").items():
            if value is not None:
                merged[key] = value
    return merged


def load_settings(
    yaml_path: str | Path,
    *,
    env_files: Sequence[str | Path] | None = None,
    overrides: Mapping[str, str] | None = None,
) -> ExperimentSettings:
    """Read ``ExperimentSettings`` from YAML, resolving ``${VAR}`` and ``${VAR:-default}``.

    An empty document yields the default settings.
    """
    path = Path(yaml_path)
    document = _parse(path)
    if document is None:
        return ExperimentSettings()
    if not isinstance(document, dict):
        message = f"Settings file must contain a mapping: {path}"
        raise LoadError(message)
    env = load_environment(env_files, base=overrides)
    return _validate(ExperimentSettings, _resolve_placeholders(document, env), path)


def load_questions(path: str | Path) -> LoadResult[Question]:
    """Read questions from a JSON/YAML list or a mapping with a ``questions`` list."""
    source = Path(path)
    document = _parse(source)
    if document is None:
        return LoadResult(items=(), source=source)
    if isinstance(document, dict):
        mapping = cast("dict[str, Any]", document)
        if _QUESTIONS_KEY not in mapping:
            message = f"Question payload must be a list or contain a '{_QUESTIONS_KEY}' key: {source}"
            raise LoadError(message)
        document = mapping[_QUESTIONS_KEY]
    if not isinstance(document, list):
        message = f"Question payload '{_QUESTIONS_KEY}' must be a list: {source}"
        raise LoadError(message)
    questions: list[Question] = []
    for entry in cast("list[Any]", document):
        if not isinstance(entry, dict):
            message = f"Question entries must be mappings in {source}"
            raise LoadError(message)
        questions.append(_validate(Question, cast("dict[str, Any]", entry), source))
    return LoadResult(items=tuple(questions), source=source)


def _parse(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        message = f"Configuration file not found: {path}"
        raise LoadError(message) from exc
    except OSError as exc:
        message = f"Failed to read configuration file: {path}"
        raise LoadError(message) from exc
    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            message = f"Invalid JSON in {path}: {exc.msg} (line {exc.lineno})"
            raise LoadError(message) from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        message = f"Invalid YAML in {path}"
        raise LoadError(message) from exc


def _resolve_placeholders(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, dict):
        return {key: _resolve_placeholders(item, env) for key, item in cast("dict[str, Any]", value).items()}
    if isinstance(value, list):
        return [_resolve_placeholders(item, env) for item in cast("list[Any]", value)]
    if not isinstance(value, str):
        return value
    if value.count("${") != len(_PLACEHOLDER.findall(value)):
        message = f"Malformed environment placeholder in '{value}'"
        raise LoadError(message)

    def substitute(match: re.Match[str]) -> str:
        key = match.group("key")
        if key in env:
            return env[key]
        default = match.group("default")
        if default is None:
            message = f"Missing environment variable '{key}' referenced in configuration"
            raise LoadError(message)
        return default

    return _PLACEHOLDER.sub(substitute, value)


def _validate[T: BaseModel](model_cls: type[T], payload: Mapping[str, Any], source: Path) -> T:
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        message = f"Invalid {model_cls.__name__} in {source}: {exc}"
        raise LoadError(message) from exc
