"""Address expressions and run listings for selecting runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import re
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .experiment import Experiment

__all__ = [
    "ADDRESS_SEPARATOR",
    "ListingEntry",
    "RunSelector",
    "TableRenderer",
    "format_address",
]

ADDRESS_SEPARATOR = ":"
WILDCARD = "*"

_INDEX_PATTERN = re.compile(r"\d+")
_RANGE_PATTERN = re.compile(r"\[(\d+)-(\d+)\]")
_REGEX_PREFIX = "r:"
_ADDRESS_PREFIX = "a:"


def format_address(batch_name: str, run_id: int) -> str:
    """Return the ``batch:id`` address of a run."""
    return f"{batch_name}{ADDRESS_SEPARATOR}{run_id}"


@dataclass(frozen=True, slots=True)
class ListingEntry:
    """Address/status pair shown in a run listing."""

    address: str
    status: str


class TableRenderer(Protocol):
    """Collaborator that displays tabular rows."""

    def render(self, rows: Sequence[Mapping[str, Any]]) -> None:  # pragma: no cover - protocol method
        """Display ``rows`` with their positional index."""
        ...


class RunSelector:
    """Resolve address expressions against the most recent listing.

    Tokens resolve, in order, as a literal ``batch:id`` address, a position in the
    last listing, or an inclusive ``[lo-hi]`` range of positions (``lo < hi``).
    Unmatched tokens are dropped. A ``*`` token appends the whole last listing.
    """

    def __init__(
        self,
        experiment: Experiment[Any, Any],
        renderer: TableRenderer | None = None,
    ) -> None:
        """Bind the selector to ``experiment`` and an optional table renderer."""
        self.experiment = experiment
        self.renderer = renderer
        self.last_list: list[ListingEntry] = []

    def get_run_addresses(self, tokens: Sequence[str]) -> list[str]:
        """Expand ``tokens`` into concrete run addresses."""
        addresses: list[str] = []
        for token in tokens:
            addresses.extend(self._resolve_token(token))
        if WILDCARD in tokens:
            addresses.extend(entry.address for entry in self.last_list)
        return addresses

    def _resolve_token(self, token: str) -> list[str]:
        if self.experiment.addr_to_batch_and_run(token) is not None:
            return [token]
        if _INDEX_PATTERN.fullmatch(token):
            index = int(token)
            if index < len(self.last_list):
                return [self.last_list[index].address]
        match = _RANGE_PATTERN.search(token)
        if match:
            low, high = int(match.group(1)), int(match.group(2))
            if low < high:
                return [entry.address for entry in self.last_list[low : high + 1]]
        return []

    def list_runs(self, query: str | None = None) -> list[ListingEntry]:
        """Refresh ``last_list`` for ``query`` and render it.

        ``r:<regex>`` searches address or status, ``a:<expr>`` narrows the current
        listing to an address expression, and any other text is a substring filter.
        """
        if not query:
            self.last_list = self.experiment.run_list()
        elif query.startswith(_REGEX_PREFIX):
            pattern = re.compile(query.removeprefix(_REGEX_PREFIX))
            self.last_list = [
                entry
                for entry in self.experiment.run_list()
                if pattern.search(entry.address) or pattern.search(entry.status)
            ]
        elif query.startswith(_ADDRESS_PREFIX):
            selected = set(self.get_run_addresses([query.removeprefix(_ADDRESS_PREFIX)]))
            self.last_list = [entry for entry in self.last_list if entry.address in selected]
        else:
            self.last_list = [
                entry
                for entry in self.experiment.run_list()
                if query in entry.address or query in entry.status
            ]
        if self.renderer is not None:
            self.renderer.render([asdict(entry) for entry in self.last_list])
        return self.last_list
