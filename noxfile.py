from __future__ import annotations

from pathlib import Path
import platform
import sys
from typing import TYPE_CHECKING

import nox

if TYPE_CHECKING:
    from nox.sessions import Session

nox.options.default_venv_backend = "uv"
nox.options.reuse_existing_virtualenvs = True
nox.options.sessions = ["lint", "typing", "test"]

PYTHON = ["3.12", "3.13"]
PACKAGE = "experiment_manager"
COVER_MIN = 80


def constraints(session: Session) -> Path:
    """Return the pinned constraints file for the session interpreter and platform."""
    filename = f"python{session.python}-{sys.platform}-{platform.machine()}.txt"
    return Path("constraints", filename)


def install(session: Session, *targets: str) -> None:
    """Install ``targets`` honouring the lock file when one exists."""
    pins = constraints(session)
    if pins.exists():
        session.install("-c", pins.as_posix(), *targets)
    else:
        session.install(*targets)


@nox.session(python=PYTHON, venv_backend="uv")
def lock(session: Session) -> None:
    """Pin every dependency, extras included, for this interpreter."""
    filename = constraints(session)
    filename.parent.mkdir(exist_ok=True)
    session.run(
        "uv",
        "pip",
        "compile",
        "pyproject.toml",
        "--upgrade",
        "--quiet",
        "--all-extras",
        f"--output-file={filename}",
    )


@nox.session(python=PYTHON[-1], tags=["lint"])
def lint(session: Session) -> None:
    """Check style, import order and formatting with Ruff."""
    install(session, "ruff")
    session.run("ruff", "check", *session.posargs)
    session.run("ruff", "format", "--check")


@nox.session(python=PYTHON[-1], tags=["format"])
def format_code(session: Session) -> None:
    """Apply Ruff fixes and formatting in place."""
    install(session, "ruff")
    session.run("ruff", "check", "--select", "I", "--fix")
    session.run("ruff", "format")


@nox.session(python=PYTHON[-1], tags=["typing"])
def typing(session: Session) -> None:
    """Run Pyright in strict mode over sources and tests."""
    install(session, ".[dev]")
    session.run("pyright")


@nox.session(python=PYTHON, tags=["test"])
def test(session: Session) -> None:
    """Run the unit tests with a coverage floor."""
    install(session, ".[dev]")
    session.run(
        "pytest",
        f"--cov={PACKAGE}",
        "--cov-report=term-missing",
        f"--cov-fail-under={COVER_MIN}",
        *session.posargs,
    )


@nox.session(python=PYTHON[-1], tags=["cli"])
def smoke(session: Session) -> None:
    """Exercise the installed `xm` entry point without network access."""
    install(session, ".")
    workdir = Path(session.create_tmp())
    session.run("xm", "--help", silent=True)
    session.run("xm", "init", str(workdir), "--force")


@nox.session(python=PYTHON[-1], tags=["ci"])
def ci(session: Session) -> None:
    """Queue every check run in continuous integration."""
    for name in ("lint", "typing", "test", "smoke"):
        session.notify(name)
