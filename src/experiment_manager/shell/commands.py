"""Generic line-oriented command shell with typed argument coercion."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import functools
import inspect
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

__all__ = ["Argument", "Command", "CommandError", "CommandShell"]


class CommandError(RuntimeError):
    """Raised when a command line cannot be parsed or dispatched."""


@functools.cache
def _adapter(annotation: Any) -> TypeAdapter[Any]:
    return TypeAdapter(annotation)


@dataclass(frozen=True, slots=True)
class Argument:
    """Positional command argument coerced from its string token."""

    description: str
    annotation: Any = str
    required: bool = True

    def coerce(self, token: str) -> Any:
        """Validate ``token`` against the argument annotation."""
        return _adapter(self.annotation).validate_python(token)


@dataclass(frozen=True, slots=True)
class Command:
    """Entry in the command table.

    Commands declaring neither ``arguments`` nor ``rest`` ignore extra tokens.
    """

    aliases: tuple[str, ...]
    handler: Callable[..., Any]
    arguments: tuple[Argument, ...] = ()
    rest: Argument | None = None
    description: str | None = None

    def parse(self, tokens: Sequence[str]) -> list[Any]:
        """Coerce ``tokens`` into handler arguments."""
        if not self.arguments and self.rest is None:
            return []
        values: list[Any] = []
        errors: list[str] = []
        for index, argument in enumerate(self.arguments):
            if index >= len(tokens):
                if argument.required:
                    errors.append(f"arg{index}: missing {argument.description}")
                else:
                    values.append(None)
                continue
            values.append(_coerce(argument, tokens[index], f"arg{index}", errors))
        extra = tokens[len(self.arguments) :]
        if extra and self.rest is None:
            errors.append(f"unexpected arguments: {' '.join(extra)}")
        elif self.rest is not None:
            offset = len(self.arguments)
            values.extend(
                _coerce(self.rest, token, f"arg{offset + index}", errors) for index, token in enumerate(extra)
            )
        if errors:
            raise CommandError("\n".join(errors))
        return values

    def usage(self) -> str:
        """Return a one-line usage string."""
        names = [f"arg{index}" for index in range(len(self.arguments))]
        if self.rest is not None:
            names.append("...")
        return f"[ {'|'.join(self.aliases)} ] {' '.join(names)}".rstrip()


def _coerce(argument: Argument, token: str, label: str, errors: list[str]) -> Any:
    try:
        return argument.coerce(token)
    except ValidationError as exc:
        errors.extend(f"{label}: {error['msg']}" for error in exc.errors())
        return None


class CommandShell:
    """Read lines, look up the first word in the command table and run the handler."""

    def __init__(self, console: Console | None = None, *, prompt: str = "> ") -> None:
        """Create a shell with the built-in help, exit and clear commands."""
        self.console = console or Console()
        self.prompt = prompt
        self._commands: list[Command] = []
        self._running = False
        self.register(Command(("help", "h", "?"), self.print_help, description="Prints this help message"))
        self.register(Command(("exit", "quit", "q"), self.stop, description="Exits the shell"))
        self.register(Command(("clear", "c"), self.console.clear, description="Clears the console"))

    @property
    def commands(self) -> tuple[Command, ...]:
        """Return the registered commands in registration order."""
        return tuple(self._commands)

    def register(self, command: Command) -> None:
        """Add ``command`` to the table."""
        self._commands.append(command)

    def find(self, name: str) -> Command | None:
        """Return the command answering to ``name``."""
        return next((command for command in self._commands if name in command.aliases), None)

    def stop(self) -> None:
        """Leave the read loop after the current line."""
        self._running = False

    def print_help(self) -> None:
        """Print every command with its arguments."""
        self.console.print("OPTIONS")
        for command in self._commands:
            self.console.print(escape(command.usage()))
            if command.description:
                self.console.print(f"\t{command.description}")
            if command.arguments or command.rest is not None:
                self.console.print("\tArguments:")
                for index, argument in enumerate(command.arguments):
                    self.console.print(f"\t\targ{index}:\t{argument.description}")
                if command.rest is not None:
                    self.console.print(f"\t\t...:\t{command.rest.description}")

    async def dispatch(self, line: str) -> Any:
        """Parse and execute one input line, awaiting coroutine handlers."""
        tokens = line.split()
        if not tokens:
            return None
        command = self.find(tokens[0])
        if command is None:
            message = f"Invalid command: {tokens[0]}"
            raise CommandError(message)
        result = command.handler(*command.parse(tokens[1:]))
        if inspect.isawaitable(result):
            result = await result
        return result

    async def run(self, read_line: Callable[[str], str] = input) -> None:
        """Read and dispatch lines until ``exit`` or end of input."""
        self._running = True
        while self._running:
            try:
                line = await asyncio.to_thread(read_line, self.prompt)
            except EOFError:
                break
            try:
                await self.dispatch(line)
            except CommandError as exc:
                self.console.print(f"[red]{escape(str(exc))}[/red]")
            except Exception as exc:
                self.console.print(f"[red]{type(exc).__name__}: {escape(str(exc))}[/red]")
