"""Line-oriented command layer for driving an experiment interactively."""

from .commands import Argument, Command, CommandError, CommandShell
from .experiment_shell import ExperimentShell

__all__ = ["Argument", "Command", "CommandError", "CommandShell", "ExperimentShell"]
