"""Experiment manager: orchestrate batches of resumable, scored runs."""

from experiment_manager.domain.models import RunStatus, Score
from experiment_manager.orchestration import Batch, Experiment, Run, RunTimeoutError

__version__ = "0.1.0"
__all__ = ["Batch", "Experiment", "Run", "RunStatus", "RunTimeoutError", "Score", "__version__"]
