"""Config loader helpers for the experiment manager."""

from .loader import (
    LoadError,
    LoadResult,
    load_environment,
    load_questions,
    load_settings,
)

__all__ = [
    "LoadError",
    "LoadResult",
    "load_environment",
    "load_questions",
    "load_settings",
]
