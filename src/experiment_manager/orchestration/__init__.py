"""Run lifecycle, batch aggregation and experiment orchestration."""

from .addressing import ListingEntry, RunSelector, TableRenderer, format_address
from .batch import Batch, BatchEntry
from .experiment import DuplicateBatchError, Experiment, ResolvedAddress
from .run import STEP_TIMEOUT_SECONDS, Run, Runner, RunTimeoutError

__all__ = [
    "STEP_TIMEOUT_SECONDS",
    "Batch",
    "BatchEntry",
    "DuplicateBatchError",
    "Experiment",
    "ListingEntry",
    "ResolvedAddress",
    "Run",
    "RunSelector",
    "RunTimeoutError",
    "Runner",
    "TableRenderer",
    "format_address",
]
